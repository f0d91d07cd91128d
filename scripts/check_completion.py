"""Debug script to check the completion provider connection."""

import asyncio

from rich.console import Console
from rich.panel import Panel

from webnovel_translator.config import AppConfig, mask_api_key
from webnovel_translator.translator.llm import CompletionRequest, create_completion_client
from webnovel_translator.translator.outcome import CompletionError

console = Console()

SAMPLE_URL = "https://ncode.syosetu.com/n5547eo/1/"


async def check_completion():
    """Send a plain request, then a URL-context request, and report what came back."""
    config = AppConfig.load()

    console.print(Panel("[bold blue]Completion Provider Check[/bold blue]"))

    # 1. Configuration
    console.print("\n[bold]1. Configuration[/bold]")
    console.print(f"  Provider: {config.llm.provider}")
    console.print(f"  Model: {config.llm.model}")
    console.print(f"  API key: {mask_api_key(config.llm.api_key)}")
    if config.llm.provider == "openai":
        console.print(f"  Base URL: {config.llm.base_url}")

    if not config.llm.api_key:
        console.print("\n[red]ERROR: LLM_API_KEY is not set![/red]")
        console.print("Please set it in .env file")
        return

    client = create_completion_client(config.llm, config.crawler)

    # 2. Plain completion
    console.print("\n[bold]2. Simple Completion Test[/bold]")
    request = CompletionRequest(
        model=config.llm.model,
        system_instruction="You are a helpful assistant.",
        user_message="Translate 'こんにちは、世界' into English.",
    )
    try:
        text = await client.complete(request)
    except CompletionError as e:
        console.print(f"  [red]{e.kind.value}: {e}[/red]")
        if e.status_code:
            console.print(f"  Status code: {e.status_code}")
        return

    if text.strip():
        console.print(f"  [green]SUCCESS![/green] Response: {text.strip()}")
    else:
        console.print("  [red]WARNING: Response is empty![/red]")

    # 3. URL context
    console.print("\n[bold]3. URL Context Test[/bold]")
    console.print(f"  Asking the model to read {SAMPLE_URL}")
    request = CompletionRequest(
        model=config.llm.model,
        system_instruction="Reply with the title of the chapter at the given URL, nothing else.",
        user_message=SAMPLE_URL,
        use_url_context=True,
    )
    try:
        text = await client.complete(request)
    except CompletionError as e:
        console.print(f"  [red]{e.kind.value}: {e}[/red]")
        return

    console.print(f"  Response length: {len(text)} chars")
    console.print(f"  {text.strip()[:200]}")


if __name__ == "__main__":
    asyncio.run(check_completion())
