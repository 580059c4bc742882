from rich.console import Console


# Shared across modules so progress lines interleave in one stream; stdout
# stays free for anything piped out of the CLI.
console = Console(stderr=True)
