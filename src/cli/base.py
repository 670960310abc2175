"""Base CLI setup for blrtag"""

import click


class OrderedGroup(click.Group):
    """Click group that preserves command order in help text"""

    def list_commands(self, ctx):
        """Return commands in the order they were added."""
        return list(self.commands)


@click.group(cls=OrderedGroup)
@click.version_option(package_name="blrtag")
def cli():
    """
    blrtag: barcode clustering, cluster tagging and cluster-aware
    duplicate calling for barcoded linked-read data
    """


def main():
    """Entry point for blrtag CLI."""
    cli()
