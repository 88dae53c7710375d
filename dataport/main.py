"""
데이터 이동 플랫폼 SDK

메인 진입점 파일입니다.
"""

import typer
from rich.console import Console

from dataport.adapters.cli.sync_commands import sync_app
from dataport.config.adapters import get_config
from dataport.version import __version__

# 메인 CLI 앱
app = typer.Typer(
    name="dataport",
    help="데이터 이동 플랫폼 SDK",
    no_args_is_help=True,
)

# 서브 명령어 추가
app.add_typer(sync_app, name="session")

console = Console()


@app.command("version")
def show_version():
    """버전 정보를 표시합니다."""
    console.print("[bold]데이터 이동 플랫폼 SDK[/bold]")
    console.print(f"버전: {__version__}")


@app.command("config")
def show_config():
    """현재 설정을 표시합니다."""
    try:
        config = get_config()

        console.print("[bold]현재 설정[/bold]")
        console.print(f"환경: {config.get_environment()}")
        console.print(f"디버그 모드: {config.is_debug()}")
        console.print(f"API URL: {config.get_base_url()}")
        console.print(f"온보딩 URL: {config.get_onboard_url()}")
        console.print(f"애플리케이션 ID: {config.get_application_id()}")
        console.print(f"계약 ID: {config.get_contract_id()}")
        console.print(f"개인 키 경로: {config.get_private_key_path()}")
        console.print(f"리다이렉트 URI: {config.get_redirect_uri()}")
        console.print(f"폴링 간격(초): {config.get_poll_interval()}")
        console.print(f"재시도 횟수: {config.get_retry_config()['limit']}")
        console.print(f"로그 레벨: {config.get_log_level()}")

    except Exception as e:
        console.print(f"[red]오류: {str(e)}[/red]")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
