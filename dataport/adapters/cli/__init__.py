"""
CLI 어댑터 패키지

typer 기반 명령어들을 포함합니다.
"""
