from sportlink_sync.cli import cli

cli()
