import click, logging, json, os
from dotenv import load_dotenv

from . import context, registry
from .errors import EngineUnavailable, SpawnError
from .protocol import SHARED_MOUNT_ROOT, dashboard_url, vnc_url
from .tools import browser, health, instance_config, instance_manager
from .tools import container_engine as engine

load_dotenv()

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

# commands that never talk to docker
OFFLINE_COMMANDS = {"check"}


class SpawnGroup(click.Group):
    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except SpawnError as exc:
            logging.debug("command failed", exc_info=True)
            raise click.ClickException(str(exc))


def _parse_mount(value):
    """HOST[:CONTAINER][:ro|rw] -> {host, container, mode}."""
    parts = value.split(":")
    mode = "rw"
    if parts[-1] in ("ro", "rw") and len(parts) > 1:
        mode = parts.pop()
    if len(parts) > 2:
        raise click.BadParameter(f"too many ':' in mount '{value}'")
    host = os.path.abspath(os.path.expanduser(parts[0]))
    if not os.path.exists(host):
        raise click.BadParameter(f"path does not exist: {host}")
    target = parts[1] if len(parts) == 2 else f"{SHARED_MOUNT_ROOT}/{os.path.basename(host)}"
    return {"host": host, "container": target, "mode": mode}


def _select_instance(name):
    if name:
        registry.get_instance(name)
        return name
    names = sorted(registry.list_instances())
    if not names:
        raise click.ClickException("No instances found. Create one with: openclaw-spawn new NAME")
    if len(names) == 1:
        return names[0]
    return click.prompt("Select instance", type=click.Choice(names))


@click.group(cls=SpawnGroup)
@click.option("--verbose", "-v", is_flag=True, help="Log debug output.")
@click.pass_context
def cli(ctx, verbose):
    """Docker orchestrator for multiple OpenClaw instances."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    if ctx.invoked_subcommand in OFFLINE_COMMANDS:
        return
    if not engine.is_running():
        if not engine.is_installed():
            raise EngineUnavailable("Docker is not installed.")
        raise EngineUnavailable("Docker is not running. Please start Docker.")


@cli.command("list")
@click.option("--json", "as_json", is_flag=True, help="Dump the raw registry records.")
def list_cmd(as_json):
    """List all instances with their live container status."""
    data = registry.list_instances()
    if as_json:
        click.echo(json.dumps(data, indent=2))
        return
    if not data:
        click.secho("No instances found. Create one with: openclaw-spawn new NAME", fg="yellow")
        return

    for name, inst in data.items():
        state = engine.status(inst["container"])
        color = {"running": "green", "stopped": "red"}.get(state, "white")
        click.secho(name, bold=True)
        click.echo(f"  Port: {inst['basePort']}")
        click.echo("  Status: " + click.style(state, fg=color))
        click.echo(f"  Container: {inst['container']}")
        click.echo(f"  Created: {inst['created']}")
        for m in inst.get("mounts", []):
            click.echo(f"  Mount: {m['host']} -> {m['container']} ({m['mode']})")
        if state == engine.RUNNING:
            up = "up" if health.gateway_reachable(inst["basePort"]) else "not answering"
            click.echo(f"  Gateway: {up}")
            click.echo(f"  Browser: {vnc_url(inst['basePort'])}")
        click.echo()


@cli.command()
@click.argument("name")
@click.option(
    "--mount", "-m", "mounts", multiple=True,
    help="Share a host folder: HOST[:CONTAINER][:ro]. Repeatable.",
)
def new(name, mounts):
    """Allocate ports, register and create a new instance."""
    parsed = [_parse_mount(m) for m in mounts]
    inst = instance_manager.create_instance(name, parsed)
    click.secho(f"✓ Created instance {name} on port {inst['basePort']}", fg="green")
    click.echo(f"Next: openclaw-spawn run -i {name} onboard")


@cli.command()
@click.argument("name")
def start(name):
    """Start an instance (recreating its container if it disappeared)."""
    instance_manager.start_instance(name)
    click.secho(f"✓ Started instance {name}", fg="green")


@cli.command()
@click.argument("name")
def stop(name):
    """Stop an instance."""
    instance_manager.stop_instance(name)
    click.secho(f"✓ Stopped instance {name}", fg="green")


@cli.command()
@click.argument("name")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
def remove(name, yes):
    """Stop and remove an instance."""
    registry.get_instance(name)
    if not yes and not click.confirm(f"Remove instance {name}?", default=False):
        click.secho("Cancelled", fg="yellow")
        return
    instance_manager.remove_instance(name)
    click.secho(f"✓ Removed instance {name}", fg="green")


@cli.command()
@click.argument("name")
@click.option("--follow", "-f", is_flag=True)
def logs(name, follow):
    """Show container logs for an instance."""
    engine.logs(registry.get_instance(name)["container"], follow=follow)


@cli.command()
@click.option(
    "--context", "context_dir", default=".", show_default=True,
    type=click.Path(exists=True, file_okay=False),
    help="Directory holding the Dockerfile.",
)
@click.option("--force", is_flag=True, help="Rebuild even if the image exists.")
def build(context_dir, force):
    """Build the base image."""
    if engine.image_exists() and not force:
        click.secho(f"✓ {context.image()} already built, skipping (use --force to rebuild)", fg="green")
        return
    click.echo(f"Building {context.image()} (this may take a few minutes)...")
    engine.build_image(context_dir)
    click.secho("✓ Build complete!", fg="green")


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
def cleanup(yes):
    """Remove all containers and reset the registry."""
    if not yes and not click.confirm("Remove all instances and reset metadata?", default=False):
        click.secho("Cancelled", fg="yellow")
        return
    removed = instance_manager.cleanup()
    click.secho(f"✓ Cleanup complete ({len(removed)} instance(s) removed)", fg="green")


@cli.command()
def check():
    """Report instances whose port blocks overlap."""
    clashes = instance_manager.check_registry()
    if not clashes:
        click.secho("✓ No overlapping port blocks", fg="green")
        return
    for a, b, shared in clashes:
        click.secho(f"✗ {a} and {b} share ports {', '.join(map(str, shared))}", fg="red")
    raise SystemExit(1)


@cli.command("browser")
@click.argument("name", required=False)
def browser_cmd(name):
    """Open a VNC view on the agent's browser (shared with the agent)."""
    name = _select_instance(name)
    click.echo(f"Starting browser view for {name}...")
    url = browser.open_view(name)
    click.secho("✓ Browser view ready!", fg="green")
    click.echo(f"Open on your machine: {url}")
    click.echo(f"When done: openclaw-spawn browser-stop {name}")
    click.launch(url)


@cli.command("browser-stop")
@click.argument("name", required=False)
def browser_stop(name):
    """Close the VNC view; the agent's browser keeps running."""
    name = _select_instance(name)
    browser.close_view(name)
    click.secho("✓ VNC stopped. Agent browser tool is still active.", fg="green")


@cli.command(context_settings={"ignore_unknown_options": True})
@click.option("--instance", "-i", "name", help="Instance to run the command in.")
@click.option("--detach", "-d", is_flag=True, help="Start in the background.")
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
def run(name, detach, command):
    """
    Run any openclaw COMMAND inside an instance (default: onboard).

    The container is started or recreated first if needed.
    """
    name = _select_instance(name)
    command = " ".join(command) or "onboard"
    instance_manager.dispatch(name, command, detach=detach)

    if detach:
        click.secho("✓ Command started in background", fg="green")
        click.echo(f"View logs: openclaw-spawn logs {name} -f")
    elif command.startswith("dashboard"):
        inst = registry.get_instance(name)
        url = dashboard_url(inst["basePort"], instance_config.gateway_token(name))
        click.echo(f"Instance {name} -> open on your machine: {url}")


if __name__ == "__main__":
    cli()
