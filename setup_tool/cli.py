"""
Command-line interface for the media vault.

Provides a guided setup wizard plus upload, listing, sync and curation
commands using the Click framework.
"""

import logging
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.prompt import Confirm, Prompt
from rich.table import Table

from library.manager import AssetLibrary
from shared.categories import format_file_size
from shared.config import config_path, load_config, save_config
from shared.constants import DEFAULT_BUCKET, DEFAULT_MAX_KEYS, DEFAULT_REGION, DEFAULT_UPLOAD_CONCURRENCY
from shared.errors import StorageError
from shared.models import StorageProvider, StoreConfig
from shared.results import Outcome
from .provider_factory import StorageProviderFactory

console = Console()


def _load_library(config_dir: Optional[str]) -> Optional[AssetLibrary]:
    """Build the library from saved config, printing why when that is impossible."""
    try:
        config = load_config(config_dir)
    except StorageError as e:
        console.print(f"[red]Error loading config: {e}[/red]")
        return None

    if config is None:
        console.print("[red]Error: Configuration not found. Run 'init' first.[/red]")
        return None

    try:
        return AssetLibrary.from_config(config)
    except StorageError as e:
        console.print(f"[red]Error: {e}[/red]")
        return None


def _short_id(asset_id: str) -> str:
    return asset_id[:8]


def _resolve_asset_id(library: AssetLibrary, prefix: str) -> Optional[str]:
    """Accept a full id or an unambiguous id prefix."""
    matches = [a.id for a in library.list_assets() if a.id.startswith(prefix)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        console.print(f"[red]No asset matches '{prefix}'[/red]")
    else:
        console.print(f"[yellow]'{prefix}' matches {len(matches)} assets; use more characters[/yellow]")
    return None


@click.group()
@click.version_option(version="1.0.0")
@click.option('--config-dir', envvar='MEDIAVAULT_CONFIG_DIR', default=None,
              help='Directory holding config.json')
@click.option('-v', '--verbose', is_flag=True, help='Show debug logging')
@click.pass_context
def cli(ctx, config_dir, verbose):
    """
    Media Vault

    Upload, catalogue and sync media assets on S3-compatible storage
    (Wasabi / AWS S3 / Cloudflare R2 / Backblaze B2 / Generic S3)
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    ctx.ensure_object(dict)
    ctx.obj['config_dir'] = config_dir


@cli.command()
@click.option('--provider', type=click.Choice([p.value for p in StorageProvider]),
              help='Storage provider; prompted for when omitted')
@click.option('--create-bucket/--no-create-bucket', default=True,
              help='Create the bucket if it does not exist')
@click.pass_context
def init(ctx, provider, create_bucket):
    """
    Initialize storage configuration.

    Collects endpoint and credentials, creates the bucket and saves the
    configuration with encrypted credentials.
    """
    console.print(Panel.fit(
        "[bold cyan]Media Vault Setup[/bold cyan]\n\n"
        "This wizard connects the vault to your object storage.",
        border_style="cyan"
    ))

    if not provider:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Option", style="cyan", width=8)
        table.add_column("Provider", style="green")
        table.add_column("About")
        choices = list(StorageProvider)
        for i, p in enumerate(choices, start=1):
            table.add_row(f"[{i}]", StorageProviderFactory.get_provider_name(p),
                          StorageProviderFactory.get_provider_description(p))
        console.print(table)
        choice = Prompt.ask("Select provider", choices=[str(i) for i in range(1, len(choices) + 1)], default="1")
        provider_enum = choices[int(choice) - 1]
    else:
        provider_enum = StorageProvider(provider)

    if provider_enum == StorageProvider.LOCAL:
        endpoint = Prompt.ask("Storage directory", default="~/MediaVault")
        bucket = Prompt.ask("Bucket (sub-folder)", default=DEFAULT_BUCKET)
        access_key_id = secret_access_key = ""
        region = "local"
    else:
        region = Prompt.ask("Region (account id for R2)", default=DEFAULT_REGION)
        try:
            default_endpoint = StorageProviderFactory.default_endpoint(provider_enum, region)
        except StorageError:
            default_endpoint = None
        endpoint = Prompt.ask("Endpoint URL", default=default_endpoint)
        bucket = Prompt.ask("Bucket name", default=DEFAULT_BUCKET)
        access_key_id = Prompt.ask("Access Key ID").strip()
        secret_access_key = Prompt.ask("Secret Access Key", password=True).strip()

    config = StoreConfig(
        provider=provider_enum,
        endpoint=endpoint,
        bucket=bucket,
        access_key_id=access_key_id,
        secret_access_key=secret_access_key,
        region=region,
    )

    if create_bucket:
        with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
                      console=console) as progress:
            progress.add_task("Creating bucket...", total=None)
            try:
                StorageProviderFactory.create(config).ensure_bucket()
            except StorageError as e:
                console.print(f"[red]Could not create bucket: {e}[/red]")
                if not Confirm.ask("Save the configuration anyway?", default=False):
                    return

    path = save_config(config, ctx.obj['config_dir'])
    console.print(Panel.fit(
        "[bold green]Setup Complete![/bold green]\n\n"
        f"Provider: {StorageProviderFactory.get_provider_name(provider_enum)}\n"
        f"Bucket: {bucket}\n"
        f"Config: {path}\n\n"
        "[cyan]Next steps:[/cyan]\n"
        "• Upload media: [yellow]mediavault upload /path/to/files[/yellow]\n"
        "• Sync catalogue: [yellow]mediavault sync[/yellow]",
        border_style="green"
    ))


@cli.command()
@click.pass_context
def status(ctx):
    """Show storage configuration and catalogue size."""
    library = _load_library(ctx.obj['config_dir'])
    if not library:
        return

    info = library.status()
    table = Table(show_header=False, box=None)
    table.add_column(style="cyan")
    table.add_column()
    table.add_row("Provider", info['provider'])
    table.add_row("Endpoint", info['endpoint'])
    table.add_row("Bucket", info['bucket'])
    table.add_row("Region", info['region'])
    table.add_row("Credentials", "[green]configured[/green]" if info['configured'] else "[yellow]missing[/yellow]")
    table.add_row("Cached assets", str(info['cached_assets']))
    table.add_row("Config file", str(config_path(ctx.obj['config_dir'])))
    console.print(table)

    try:
        reachable = library.storage.bucket_exists()
    except StorageError as e:
        console.print(f"[red]Store unreachable: {e}[/red]")
        return
    console.print("[green]Bucket reachable[/green]" if reachable else "[yellow]Bucket not found[/yellow]")


@cli.command()
@click.argument('paths', nargs=-1, required=True, type=click.Path(exists=True))
@click.option('--project', 'project_name', help='Production the files belong to')
@click.option('--client', 'client_name', help='Client the files belong to')
@click.option('--folder', help='Explicit destination folder')
@click.option('--tag', 'tags', multiple=True, help='Tag to add (repeatable)')
@click.option('--parallel', default=DEFAULT_UPLOAD_CONCURRENCY, type=click.IntRange(1, 8),
              help='Files uploaded at once')
@click.pass_context
def upload(ctx, paths, project_name, client_name, folder, tags, parallel):
    """
    Upload files or directories.

    Each file is stored under a generated key and recorded in the local
    catalogue with detected category and tags.
    """
    library = _load_library(ctx.obj['config_dir'])
    if not library:
        return

    with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
                  TextColumn("{task.completed} done"), console=console) as progress:
        task = progress.add_task("Uploading...", total=None)

        def on_result(result):
            progress.advance(task)
            if not result.ok:
                progress.console.print(f"[red]✗ {result.file_name}: {result.error}[/red]")

        results = library.upload_paths(
            paths, concurrency=parallel, progress_callback=on_result,
            project_name=project_name, client_name=client_name,
            folder=folder, tags=list(tags),
        )

    ok = [r for r in results if r.ok]
    console.print(f"\n[green]✅ Uploaded {len(ok)}/{len(results)} files[/green]")
    for r in ok:
        console.print(f"  [cyan]{r.asset.key}[/cyan] ({format_file_size(r.asset.file_size)})")


@cli.command(name='ls')
@click.argument('prefix', default='')
@click.option('--max-keys', default=DEFAULT_MAX_KEYS, type=click.IntRange(1, None),
              help='Maximum number of objects to list')
@click.pass_context
def list_remote(ctx, prefix, max_keys):
    """List objects in the bucket."""
    library = _load_library(ctx.obj['config_dir'])
    if not library:
        return

    try:
        entries = library.storage.list_objects(prefix, max_keys)
    except StorageError as e:
        console.print(f"[red]Listing failed: {e}[/red]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Key", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Last Modified")
    for entry in entries:
        table.add_row(entry.key, format_file_size(entry.size), entry.last_modified.strftime("%Y-%m-%d %H:%M"))
    console.print(table)
    console.print(f"{len(entries)} objects")


@cli.command()
@click.option('--category', help='Only this category (video, image, audio, ...)')
@click.option('--project', 'project_name', help='Only this project')
@click.option('--tag', help='Only assets with this tag')
@click.option('--favorites', is_flag=True, help='Only favourites')
@click.option('--search', 'query', help='Search names, tags, project and client')
@click.pass_context
def assets(ctx, category, project_name, tag, favorites, query):
    """List catalogued assets."""
    library = _load_library(ctx.obj['config_dir'])
    if not library:
        return

    if query:
        items = library.search(query)
    else:
        items = library.list_assets(category=category, project_name=project_name,
                                    tag=tag, favorites_only=favorites)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Category")
    table.add_column("Size", justify="right")
    table.add_column("Project")
    table.add_column("Tags")
    for a in items:
        star = "★ " if a.is_favorite else ""
        table.add_row(_short_id(a.id), f"{star}{a.name}", a.category, format_file_size(a.file_size),
                      a.project_name or "", ", ".join(a.tags))
    console.print(table)


@cli.command()
@click.pass_context
def sync(ctx):
    """Reconcile the catalogue with the bucket contents."""
    library = _load_library(ctx.obj['config_dir'])
    if not library:
        return

    with console.status("Syncing..."):
        result = library.sync()

    if result.outcome is Outcome.REMOTE:
        console.print(f"[green]✓ Synced {len(result.assets)} assets[/green] "
                      f"({result.added} added, {result.removed} removed, {result.refreshed} refreshed)")
    else:
        console.print(f"[yellow]Store unavailable, showing cached catalogue: {result.error}[/yellow]")


@cli.command()
@click.argument('asset_id')
@click.argument('tags', nargs=-1, required=True)
@click.option('--replace', is_flag=True, help='Replace the tags instead of adding')
@click.pass_context
def tag(ctx, asset_id, tags, replace):
    """Add (or replace) tags on an asset."""
    library = _load_library(ctx.obj['config_dir'])
    if not library:
        return
    asset_id = _resolve_asset_id(library, asset_id)
    if not asset_id:
        return

    result = library.update_tags(asset_id, list(tags)) if replace else library.add_tags(asset_id, list(tags))
    if result.ok:
        console.print(f"[green]✓[/green] Tags: {', '.join(result.asset.tags)}")
    else:
        console.print(f"[red]{result.error}[/red]")


@cli.command()
@click.argument('asset_id')
@click.pass_context
def favorite(ctx, asset_id):
    """Toggle the favourite flag of an asset."""
    library = _load_library(ctx.obj['config_dir'])
    if not library:
        return
    asset_id = _resolve_asset_id(library, asset_id)
    if not asset_id:
        return

    result = library.toggle_favorite(asset_id)
    if result.ok:
        state = "added to" if result.asset.is_favorite else "removed from"
        console.print(f"[green]✓[/green] {result.asset.name} {state} favourites")
    else:
        console.print(f"[red]{result.error}[/red]")


@cli.command()
@click.argument('asset_id')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def rm(ctx, asset_id, yes):
    """Delete an asset from the bucket and the catalogue."""
    library = _load_library(ctx.obj['config_dir'])
    if not library:
        return
    asset_id = _resolve_asset_id(library, asset_id)
    if not asset_id:
        return

    asset = library.get_asset(asset_id)
    if not yes and not Confirm.ask(f"Delete [cyan]{asset.key or asset.name}[/cyan]?", default=False):
        return

    result = library.delete_asset(asset_id)
    if result.outcome is Outcome.REMOTE:
        console.print(f"[green]✓ Deleted {asset.key}[/green]")
    elif result.outcome is Outcome.LOCAL_ONLY:
        console.print(f"[yellow]Removed {asset.name} from the catalogue (no stored object)[/yellow]")
    else:
        console.print(f"[red]❌ {result.error}; the asset was kept[/red]")


@cli.command()
@click.pass_context
def stats(ctx):
    """Storage usage by category and project."""
    library = _load_library(ctx.obj['config_dir'])
    if not library:
        return

    data = library.storage_stats()
    console.print(f"[bold]{data['total_files']}[/bold] files, "
                  f"[bold]{format_file_size(data['total_size'])}[/bold]\n")

    for title, section in (("Category", 'by_category'), ("Project", 'by_project')):
        if not data[section]:
            continue
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column(title, style="cyan")
        table.add_column("Files", justify="right")
        table.add_column("Size", justify="right")
        for name, row in sorted(data[section].items(), key=lambda kv: -kv[1]['size']):
            table.add_row(name, str(row['count']), format_file_size(row['size']))
        console.print(table)


if __name__ == '__main__':
    cli()
