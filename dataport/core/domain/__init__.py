"""
Domain 패키지

도메인 엔티티, 값 객체, 오류, 포트를 정의합니다.
외부 I/O 없이 순수한 데이터 구조와 계약만 포함합니다.

주요 엔티티:
- TokenPair: 액세스/리프레시 토큰 쌍
- Session: 데이터 동기화 세션
- FileListEntry: 세션 파일 목록 항목
- FileHeaderMetadata: 파일별 x-metadata 헤더
- SyncStatus: 세션 동기화 상태
"""
