"""
Stepwise Command Line Interface (CLI)

Small utilities for preparing plugin acceptance tests by hand: compiling a
plugin binary the same way the test helpers do, and checking that a
certificate/key pair (optionally with an encrypted key) loads.
"""

import logging
from pathlib import Path

import typer
from cryptography.exceptions import UnsupportedAlgorithm
from rich.console import Console
from rich.table import Table

from stepwise.plugins.compiler import CompileError, compile_plugin
from stepwise.tls.certificates import CertificateGetter

app = typer.Typer(rich_markup_mode="markdown")
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Helpers for plugin acceptance tests."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


@app.command("compile")
def compile_command(
    name: str = typer.Argument(..., help="Plugin name (prefix added if missing)."),
    plugin_name: str = typer.Argument(..., help="Plugin directory / cmd name."),
    src_dir: Path = typer.Argument(..., help="Plugin source directory."),
    out_dir: Path = typer.Argument(..., help="Directory to write the binary to."),
) -> None:
    """Compile a plugin in the build container and print its sha256."""
    out_dir.mkdir(parents=True, exist_ok=True)
    try:
        plugin = compile_plugin(
            name, plugin_name, str(src_dir.resolve()), str(out_dir.resolve())
        )
    except CompileError as e:
        console.print(f"[red]Build failed:[/red]\n{e.stderr}")
        raise typer.Exit(1)
    except OSError as e:
        console.print(f"[red]Could not read built binary: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Compiled Plugin")
    table.add_column("Name", style="cyan")
    table.add_column("Path", style="green")
    table.add_column("SHA256", style="magenta")
    table.add_row(plugin.name, plugin.path, plugin.sha256)
    console.print(table)


@app.command("check-cert")
def check_cert(
    cert_file: Path = typer.Argument(..., help="Certificate PEM file."),
    key_file: Path = typer.Argument(..., help="Private key PEM file."),
    passphrase: str = typer.Option(
        "", help="Passphrase for an encrypted key.", envvar="STEPWISE_KEY_PASSPHRASE"
    ),
) -> None:
    """Load a certificate/key pair once, as a listener reload would."""
    getter = CertificateGetter(str(cert_file), str(key_file), passphrase)
    try:
        getter.reload()
    except (OSError, ValueError, UnsupportedAlgorithm) as e:
        console.print(f"[red]Certificate reload failed: {e}[/red]")
        raise typer.Exit(1)

    loaded = getter.get_certificate()
    cert = loaded.certificate
    console.print(f"[bold]Subject:[/bold] {cert.subject.rfc4514_string()}")
    console.print(f"[bold]Issuer:[/bold] {cert.issuer.rfc4514_string()}")
    console.print(f"[bold]Expires:[/bold] {cert.not_valid_after_utc:%Y-%m-%d %H:%M}")
    console.print(f"[bold]Key:[/bold] {type(loaded.private_key).__name__}")
    console.print(f"[bold]Chain length:[/bold] {len(loaded.chain)}")


if __name__ == "__main__":
    app()
