"""
유즈케이스 패키지

서명 요청, 응답 검증, 토큰 수명 관리, 파일 복호화, 세션 동기화 로직을 구현합니다.
"""
