from hudline.cli import cli

cli()
