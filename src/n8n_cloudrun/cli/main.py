"""Entry point for the n8n-cloudrun command-line tool."""

import click

from n8n_cloudrun import __version__
from n8n_cloudrun.cli.commands.deploy import deploy, image_ref, url


@click.group(name="n8n-cloudrun")
@click.version_option(__version__, prog_name="n8n-cloudrun")
def main() -> None:
    """Deploy self-hosted n8n to Google Cloud Run backed by Cloud SQL.

    Settings are read from deploy.tfvars, with TF_VAR_* environment
    variables as fallback.
    """


main.add_command(deploy)
main.add_command(image_ref)
main.add_command(url)


if __name__ == "__main__":
    main()
