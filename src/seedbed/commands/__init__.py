"""Click subcommands for the seedbed CLI."""
