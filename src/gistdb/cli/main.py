"""
Main CLI entry point for gistdb.
"""

import json
import logging
import sys

import click

from gistdb import CompressionType, Config, GistDatabase
from gistdb.core.errors import GistDatabaseError


def configure_logging(level: str = "WARNING"):
    """Send log records to stderr at the given level."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s", datefmt="%Y-%m-%dT%H:%M:%S%z")
    )
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))
    logging.getLogger("httpx").setLevel(logging.WARNING)


@click.group()
@click.option("--token", "-t", envvar="GIST_TOKEN", help="GitHub token with the gist scope.")
@click.option("--gist-id", envvar="GIST_ID", help="Root gist id of the database.")
@click.option("--encryption-key", envvar="GIST_ENCRYPTION_KEY", help="Encrypt stored values with this key.")
@click.option(
    "--compression",
    type=click.Choice([c.value for c in CompressionType]),
    default=CompressionType.NONE.value,
    help="Serialization mode for stored values.",
)
@click.option("--log-level", default="WARNING", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]))
@click.pass_context
def cli(ctx, token, gist_id, encryption_key, compression, log_level):
    """gistdb - transform gists into a key/value datastore."""
    configure_logging(log_level)
    ctx.obj = Config(
        token=token,
        gist_id=gist_id,
        encryption_key=encryption_key,
        compression=CompressionType(compression),
    )


def open_database(config: Config) -> GistDatabase:
    """Build and init a database handle, turning library errors into CLI errors."""
    if not config.token:
        raise click.UsageError("a token is required (--token or GIST_TOKEN)")
    if not config.gist_id:
        raise click.UsageError("a database id is required (--gist-id or GIST_ID)")
    try:
        return GistDatabase(config).init()
    except GistDatabaseError as e:
        raise click.ClickException(str(e))


@cli.command()
@click.option("--public", "-p", is_flag=True, help="Make the gist public.")
@click.option("--description", "-d", default="", help="Description of the gist.")
@click.pass_obj
def create(config, public, description):
    """Create a new gist database."""
    if not config.token:
        raise click.UsageError("a token is required (--token or GIST_TOKEN)")
    config.public = public
    config.description = description
    click.echo("Creating database...")
    try:
        blob = GistDatabase.create_database_root(config)
    except GistDatabaseError as e:
        raise click.ClickException(str(e))
    click.echo("Database created!")
    click.echo(
        json.dumps(
            {
                "id": blob.id,
                "url": blob.url,
                "public": public,
                "description": description,
            },
            indent=2,
        )
    )


@cli.command()
@click.argument("gist_id")
@click.pass_obj
def destroy(config, gist_id):
    """Destroy a gist database and every gist it references."""
    config.gist_id = gist_id
    db = open_database(config)
    click.echo("Destroying database...")
    with db:
        db.destroy()
    click.echo("Database destroyed!")


@cli.command()
@click.argument("key")
@click.pass_obj
def get(config, key):
    """Print the document stored at KEY."""
    with open_database(config) as db:
        try:
            doc = db.get(key)
        except GistDatabaseError as e:
            raise click.ClickException(str(e))
    if doc is None:
        raise click.ClickException(f"{key} not found")
    click.echo(json.dumps({"id": doc.id, "rev": doc.rev, "value": doc.value}, indent=2))


@cli.command("set")
@click.argument("key")
@click.argument("value")
@click.option("--ttl", type=int, default=None, help="Time-to-live in milliseconds.")
@click.option("--rev", default=None, help="Expected current revision.")
@click.pass_obj
def set_(config, key, value, ttl, rev):
    """Store the JSON object VALUE at KEY."""
    try:
        parsed = json.loads(value)
    except ValueError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="VALUE")
    with open_database(config) as db:
        try:
            doc = db.set(key, parsed, ttl=ttl, rev=rev)
        except GistDatabaseError as e:
            raise click.ClickException(str(e))
    click.echo(json.dumps({"id": doc.id, "rev": doc.rev}, indent=2))


@cli.command()
@click.argument("key")
@click.pass_obj
def delete(config, key):
    """Delete the document stored at KEY."""
    with open_database(config) as db:
        deleted = db.delete(key)
    click.echo("Deleted." if deleted else f"{key} not found")


@cli.command("keys")
@click.pass_obj
def list_keys(config):
    """List every key in the database."""
    with open_database(config) as db:
        for key in db.keys():
            click.echo(key)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
