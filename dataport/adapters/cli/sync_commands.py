"""
동기화 관련 CLI 명령어

인증 URL 생성, 인증 코드 교환, 세션 파일 동기화를 처리하는 CLI 명령어들입니다.
토큰 쌍은 JSON 파일로 저장되며 갱신될 때마다 다시 기록됩니다.
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from dataport.adapters.factory import get_adapter_factory
from dataport.core.domain.entities import FileErrorEvent, FileReadResult, TokenPair, TokenPairRefreshedEvent

console = Console()
sync_app = typer.Typer(help="세션 동기화 관련 명령어")

DEFAULT_TOKEN_FILE = Path(".dataport-token.json")


def load_token_pair(path: Path) -> Optional[TokenPair]:
    """저장된 토큰 쌍을 읽습니다."""
    if not path.exists():
        return None
    return TokenPair.model_validate_json(path.read_text(encoding="utf-8"))


def save_token_pair(path: Path, token_pair: TokenPair) -> None:
    """토큰 쌍을 JSON 파일로 저장합니다."""
    path.write_text(token_pair.model_dump_json(indent=2), encoding="utf-8")


@sync_app.command("authorize-url")
def authorize_url(
    callback: str = typer.Option(..., "--callback", "-c", help="인증 완료 후 호출될 URL"),
    state: str = typer.Option("", "--state", "-s", help="콜백으로 전달될 상태 값"),
    service_id: Optional[int] = typer.Option(None, "--service", help="바로 온보딩할 서비스 ID"),
    token_file: Path = typer.Option(DEFAULT_TOKEN_FILE, "--token-file", help="토큰 쌍 JSON 파일"),
):
    """사용자 인증 URL 을 생성합니다."""
    asyncio.run(_authorize_url(callback, state, service_id, token_file))


@sync_app.command("exchange-code")
def exchange_code(
    code_verifier: str = typer.Option(..., "--code-verifier", "-v", help="authorize-url 에서 받은 코드 검증자"),
    code: str = typer.Option(..., "--code", "-c", help="콜백으로 받은 인증 코드"),
    token_file: Path = typer.Option(DEFAULT_TOKEN_FILE, "--token-file", help="토큰 쌍 JSON 파일"),
):
    """인증 코드를 토큰 쌍으로 교환합니다."""
    asyncio.run(_exchange_code(code_verifier, code, token_file))


@sync_app.command("sync")
def sync_files(
    output: Path = typer.Option(Path("data"), "--output", "-o", help="파일을 저장할 디렉터리"),
    scope: Optional[str] = typer.Option(None, "--scope", help="세션 범위 (JSON)"),
    token_file: Path = typer.Option(DEFAULT_TOKEN_FILE, "--token-file", help="토큰 쌍 JSON 파일"),
):
    """새 세션을 열고 모든 파일을 내려받습니다."""
    asyncio.run(_sync_files(output, scope, token_file))


async def _authorize_url(callback: str, state: str, service_id: Optional[int], token_file: Path):
    """인증 URL 생성"""
    try:
        factory = get_adapter_factory()
        factory.create_token_manager(token_pair=load_token_pair(token_file))
        auth_usecase = factory.create_authentication_usecase()

        result = await auth_usecase.get_authorize_url(callback, state=state, service_id=service_id)

        console.print(Panel.fit(
            f"[bold green]인증 URL 생성됨[/bold green]\n\n"
            f"[bold]세션 키:[/bold] {result.session.key}\n"
            f"[bold]코드 검증자:[/bold] {result.code_verifier}\n\n"
            f"[bold]다음 URL로 이동하여 인증을 완료하세요:[/bold]\n"
            f"[link]{result.url}[/link]\n\n"
            f"[yellow]인증 완료 후 받은 코드로 다음 명령어를 실행하세요:[/yellow]\n"
            f"[cyan]dataport session exchange-code --code-verifier {result.code_verifier} --code <CODE>[/cyan]",
            title="🔐 사용자 인증"
        ))

    except Exception as e:
        console.print(f"[red]오류: {str(e)}[/red]")
        raise typer.Exit(1)


async def _exchange_code(code_verifier: str, code: str, token_file: Path):
    """인증 코드 교환"""
    try:
        factory = get_adapter_factory()
        auth_usecase = factory.create_authentication_usecase()

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console
        ) as progress:
            task = progress.add_task("토큰 교환 중...", total=None)
            token_pair = await auth_usecase.exchange_code_for_token(code_verifier, code)
            progress.update(task, description="완료!")

        save_token_pair(token_file, token_pair)

        console.print(Panel.fit(
            f"[bold green]인증 완료![/bold green]\n\n"
            f"[bold]액세스 토큰 만료:[/bold] {token_pair.access_token.expires_on}\n"
            f"[bold]리프레시 토큰 만료:[/bold] {token_pair.refresh_token.expires_on}\n"
            f"[bold]저장 위치:[/bold] {token_file}",
            title="✅ 인증 성공"
        ))

    except Exception as e:
        console.print(f"[red]오류: {str(e)}[/red]")
        raise typer.Exit(1)


async def _sync_files(output: Path, scope: Optional[str], token_file: Path):
    """세션 파일 동기화"""
    try:
        token_pair = load_token_pair(token_file)
        if token_pair is None:
            console.print(f"[red]토큰 파일이 없습니다: {token_file}. 먼저 session exchange-code 를 실행하세요[/red]")
            raise typer.Exit(1)

        def _on_refreshed(event: TokenPairRefreshedEvent):
            save_token_pair(token_file, event.new_token_pair)

        factory = get_adapter_factory()
        factory.create_token_manager(token_pair=token_pair, on_token_pair_refreshed=_on_refreshed)
        sync_usecase = factory.create_session_sync_usecase()

        session, _ = await sync_usecase.read_session(json.loads(scope) if scope else None)
        output.mkdir(parents=True, exist_ok=True)

        table = Table(title=f"세션 {session.key} 파일")
        table.add_column("파일", style="cyan")
        table.add_column("결과", style="green")
        table.add_column("크기")

        def _on_file_data(result: FileReadResult):
            (output / result.file_name).write_bytes(result.file_data)
            table.add_row(result.file_name, "저장됨", str(len(result.file_data)))

        def _on_file_error(event: FileErrorEvent):
            table.add_row(event.file_name, f"[red]{type(event.error).__name__}: {event.error}[/red]", "-")

        handle = sync_usecase.read_all_files(session.key, _on_file_data, _on_file_error)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console
        ) as progress:
            progress.add_task("파일 동기화 중...", total=None)
            await handle.wait()

        console.print(table)
        console.print(f"[green]✓ 동기화 {handle.state.value}[/green]")

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]오류: {str(e)}[/red]")
        raise typer.Exit(1)
