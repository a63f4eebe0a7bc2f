import asyncio
import logging

import click
from dotenv import load_dotenv

from shared.enums import AttachmentKind
from shared.errors import StoreError
from shared.models import FormPhoto, FormSignature
from src.safety_app.config_manager import ConfigManager
from .logging_config import setup_logging
from .services.cloud_storage import CloudStorageService
from .services.metadata_store import SqlMetadataStore, create_db_engine
from .services.orphan_cleanup_service import OrphanCleanupService

logger = logging.getLogger(__name__)


def _stores(config, kind):
    """Object store and metadata store for one attachment kind."""
    if kind == AttachmentKind.SIGNATURES.value:
        bucket, model = config.signature_storage_bucket, FormSignature
    else:
        bucket, model = config.photo_storage_bucket, FormPhoto
    object_store = CloudStorageService.from_config(config, bucket)
    metadata_store = SqlMetadataStore(model, config.database_url)
    return object_store, metadata_store


@click.group()
@click.pass_context
def cli(ctx):
    """Maintenance commands for form photo and signature attachments."""
    load_dotenv()
    config = ConfigManager()
    setup_logging(config.log_level, config.log_dir)
    ctx.obj = config


@cli.command('init-db')
@click.pass_obj
def init_db_command(config):
    """Create the attachment metadata tables."""
    logger.info(f"Creating attachment tables in {config.database_url}")
    engine = create_db_engine(config.database_url)
    SqlMetadataStore(FormPhoto, config.database_url, engine=engine).create_tables()
    logger.info("Attachment tables created successfully")
    click.echo('Initialized the attachment database.')


@cli.command('list-attachments')
@click.argument('form_id')
@click.option('--kind', type=click.Choice([k.value for k in AttachmentKind]),
              default=AttachmentKind.PHOTOS.value, show_default=True)
@click.pass_obj
def list_attachments_command(config, form_id, kind):
    """List the stored attachments of FORM_ID in creation order."""
    object_store, metadata_store = _stores(config, kind)
    try:
        rows = asyncio.run(metadata_store.select_by_parent(form_id))
    except StoreError as e:
        raise click.ClickException(f"Could not read {kind}: {e.reason}")
    if not rows:
        click.echo(f"No {kind} stored for form {form_id}.")
        return

    for row in rows:
        label = row.get('caption') or row.get('signer_name') or ''
        click.echo(f"{row['id']}  {row['created_at']}  {object_store.public_reference(row['storage_key'])}  {label}".rstrip())
    click.echo(f"{len(rows)} {kind} for form {form_id}.")


@cli.command('find-orphans')
@click.argument('form_id')
@click.option('--kind', type=click.Choice([k.value for k in AttachmentKind]),
              default=AttachmentKind.PHOTOS.value, show_default=True)
@click.option('--fix', is_flag=True, help='Delete the orphaned objects from storage')
@click.pass_obj
def find_orphans_command(config, form_id, kind, fix):
    """Report stored objects of FORM_ID that no metadata row references."""
    logger.info(f"Starting orphan check for form {form_id} (kind={kind}, fix={fix})")
    object_store, metadata_store = _stores(config, kind)
    service = OrphanCleanupService(object_store, metadata_store)
    try:
        result = asyncio.run(service.cleanup(form_id, dry_run=not fix))
    except StoreError as e:
        raise click.ClickException(f"Orphan check failed: {e.reason}")

    for key in result['orphaned']:
        click.echo(f"Orphaned object: {key}")
    if not result['orphaned']:
        click.echo('No orphaned objects found.')
    elif fix and result['failed']:
        raise click.ClickException(f"Cleanup incomplete: {result['failed']}")
    elif fix:
        click.echo(f"Removed {len(result['removed'])} orphaned object(s).")
    else:
        click.echo(f"Found {len(result['orphaned'])} orphaned object(s). Run with --fix to remove them.")

