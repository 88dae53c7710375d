"""
어댑터 패키지

외부 서비스, 로깅, CLI 등 Core 포트의 구현체를 포함합니다.
"""
