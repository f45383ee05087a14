"""
Planwell - CLI Entry Point.

Usage:
    planwell generate --user <id> --category meal   Generate one plan
    planwell serve                                  Run the HTTP API
    planwell health                                 Check configuration
    planwell --help                                 Show help
"""

import asyncio
import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.spinner import Spinner

app = typer.Typer(
    name="planwell",
    help="Planwell - personalized meal, workout and rehabilitation plans.",
    add_completion=False,
)
console = Console()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def generate(
    user: str = typer.Option(..., "--user", "-u", help="User id the plan is generated for"),
    category: str = typer.Option("meal", "--category", "-c", help="meal, workout or rehab"),
    preferences_file: Path | None = typer.Option(None, "--preferences-file", "-p", help="JSON file with preferences"),
    no_payment: bool = typer.Option(False, "--no-payment", help="Skip payment (development only)"),
    no_fallback: bool = typer.Option(False, "--no-fallback", help="Do not switch to the fallback AI provider"),
    log_prompts: bool = typer.Option(False, "--log-prompts", "-l", help="Log all AI prompts to prompt_logs/"),
) -> None:
    """Generate a single plan and print it as JSON."""
    from planwell.config import get_settings
    from planwell.db.counter import GenerationCounter, InMemoryCounterStore, SupabaseCounterStore
    from planwell.errors import GenerationError
    from planwell.generation.coordinator import PlanGenerationCoordinator
    from planwell.generation.guard import GenerationGuard
    from planwell.llm.prompt_logger import enable_prompt_logging, get_session_log_dir
    from planwell.payments.access import SettingsPaymentPolicy

    settings = get_settings()
    _configure_logging(settings.log_level)

    if log_prompts:
        enable_prompt_logging(True)
        console.print("[dim]📝 Prompt logging enabled. Check prompt_logs/ after the run.[/dim]")

    preferences = json.loads(preferences_file.read_text(encoding="utf-8")) if preferences_file else {}

    overrides = {}
    if no_payment:
        overrides["payment_policy"] = SettingsPaymentPolicy([], settings.default_plan_price)
    if not (settings.supabase_url and settings.supabase_service_role_key):
        console.print("[dim]Supabase not configured: counting in memory.[/dim]")
        overrides["counter"] = GenerationCounter(InMemoryCounterStore())
        overrides.setdefault("payment_policy", SettingsPaymentPolicy.from_settings(settings))
    else:
        overrides["counter"] = GenerationCounter(SupabaseCounterStore())

    coordinator = PlanGenerationCoordinator.from_settings(settings, **overrides)

    async def run():
        attempt = coordinator.start(
            user,
            category,
            preferences,
            guard=GenerationGuard("cli"),
            fallback_enabled=False if no_fallback else None,
        )
        spinner = Spinner("dots", text="Starting...")
        announced_payment = False
        with Live(spinner, console=console, transient=True) as live:
            while not attempt.done:
                if attempt.payment and attempt.payment.checkout_url and not announced_payment:
                    live.console.print(f"💳 Complete your payment: {attempt.payment.checkout_url}")
                    announced_payment = True
                spinner.update(text=attempt.phases.message if attempt.state.value == "generating" else attempt.state.value)
                await asyncio.sleep(0.5)
        return await attempt.wait()

    try:
        result = asyncio.run(run())
    except GenerationError as e:
        console.print(f"\n[red]❌ {e.user_message}[/red]")
        console.print(f"[dim]{e}[/dim]")
        if e.action == "use_fallback":
            console.print("[dim]Try again without --no-fallback to use the fallback provider.[/dim]")
        raise typer.Exit(1)

    console.print_json(json.dumps(result.plan.content, ensure_ascii=False))
    console.print(
        f"\n[green]✅ {result.plan.category.value} plan generated by {result.plan.provider} "
        f"({result.plan.model}). Generations so far: {result.generation_count}[/green]"
    )

    if log_prompts:
        log_dir = get_session_log_dir()
        if log_dir:
            console.print(f"\n[dim]📝 Prompts logged to: {log_dir}[/dim]")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8000, help="Port"),
) -> None:
    """Run the HTTP API."""
    import uvicorn

    from planwell.config import get_settings

    _configure_logging(get_settings().log_level)
    uvicorn.run("planwell.web.app:app", host=host, port=port)


@app.command()
def health() -> None:
    """Check configuration for every provider."""
    from planwell.config import get_settings

    console.print("\n[bold]Planwell Health Check[/bold]\n")

    try:
        settings = get_settings()
    except Exception as e:
        console.print(f"\n[red]❌ Configuration error: {e}[/red]")
        console.print("[dim]Make sure you have a .env file with required variables.[/dim]")
        raise typer.Exit(1)

    console.print("✅ Configuration loaded")
    console.print(f"   Environment: {settings.planwell_env}")
    console.print(f"   Log level: {settings.log_level}")

    checks = {
        "Payment provider": (
            settings.asaas_api_key if settings.payment_provider.value == "asaas" else settings.mercadopago_access_token
        ),
        "Primary AI provider": settings.primary_ai_api_key,
        "Supabase": settings.supabase_url and settings.supabase_service_role_key,
    }
    failed = False
    for name, value in checks.items():
        if value:
            console.print(f"✅ {name} configured")
        else:
            console.print(f"❌ {name} missing credentials")
            failed = True

    if settings.fallback_ai_api_key:
        console.print(f"✅ Fallback AI provider configured ({settings.fallback_ai_model})")
    else:
        console.print("ℹ️  Fallback AI provider disabled")

    console.print(f"   Paid categories: {', '.join(sorted(c.value for c in settings.paid_category_set)) or 'none'}")

    if failed:
        raise typer.Exit(1)
    console.print(Panel.fit("[green]All checks passed![/green]", border_style="green"))


@app.command()
def version() -> None:
    """Show version information."""
    from planwell import __version__

    console.print(f"Planwell version {__version__}")


if __name__ == "__main__":
    app()
