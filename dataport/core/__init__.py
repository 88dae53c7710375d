"""
Core 패키지

도메인과 유즈케이스를 포함합니다.
"""
