from typer import Typer

from vitehost import __version__
from vitehost.cli.dev.commands import dev_app
from vitehost.utils import console

app = Typer(
    name="vitehost",
    help="Run a vite dev server behind a local proxy",
    no_args_is_help=True,
)
app.add_typer(dev_app)


@app.command(name="version", help="Show the vitehost version")
def version() -> None:
    console.print(f"vitehost {__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
