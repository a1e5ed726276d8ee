# cli.py
import threading

import click

from models import POLICY_DEFAULTS
from storage import PolicySource, Storage

db_option = click.option("--db", "db_path", default="plots.db", show_default=True, help="Path to the sqlite config database")


@click.group()
def cli():
    """plotctl - staggered plot job manager"""
    pass


# ---------------- Run ----------------
@cli.command()
@db_option
@click.option("--host", default="0.0.0.0", show_default=True, help="Status server bind address")
@click.option("--port", default=8484, show_default=True, help="Status server port")
@click.option("--interval", default=60.0, show_default=True, help="Seconds between scheduler ticks")
def run(db_path, host, port, interval):
    """Start the scheduler loop and the status server"""
    import uvicorn
    from dashboard import create_app
    from scheduler import Scheduler

    scheduler = Scheduler(PolicySource(Storage(db_path)))
    server = threading.Thread(
        target=uvicorn.run,
        args=(create_app(scheduler),),
        kwargs={"host": host, "port": port, "log_level": "warning"},
        name="status-server",
        daemon=True,
    )
    server.start()
    click.echo(f"🚀 Status server on http://{host}:{port}/status, ticking every {interval:g}s")
    click.echo("Press Ctrl+C to stop. Running plots are left to finish on their own.")

    stop_event = threading.Event()
    try:
        scheduler.serve_forever(interval=interval, stop_event=stop_event)
    except KeyboardInterrupt:
        stop_event.set()
        click.echo("\n🛑 Scheduler stopped.")


# ---------------- Policy ----------------
@cli.command()
@db_option
def policy(db_path):
    """Show the policy the scheduler would use right now"""
    current = PolicySource(Storage(db_path)).refresh()
    if current is None:
        click.echo("No policy configured yet. Use `plotctl config set` to add one.")
        return
    click.echo(f"parallelism: {current.parallelism}")
    click.echo(f"scratch_dirs: {', '.join(current.scratch_dirs) or '-'}")
    click.echo(f"dest_dirs: {', '.join(current.dest_dirs) or '-'}")
    click.echo(f"fingerprint: {current.fingerprint or '-'}")
    click.echo(f"stagger_minutes: {current.stagger_minutes}")
    click.echo(f"show_log: {current.show_log}")
    click.echo(f"plotter: {current.plotter}")
    click.echo(f"min_free_gib: {current.min_free_gib}")
    if not current.ready:
        click.echo("⚠️ Not ready: scratch_dirs and dest_dirs must both be set.")


# ---------------- Config management ----------------
@cli.group()
def config():
    """Runtime policy configuration"""
    pass


@config.command("set")
@db_option
@click.argument("key", type=click.Choice(sorted(POLICY_DEFAULTS)))
@click.argument("value")
def config_set(db_path, key, value):
    """Set a policy key to a value"""
    Storage(db_path).set_config(key, value)
    click.echo(f"🛠️ Config '{key}' set to '{value}'.")


@config.command("get")
@db_option
@click.argument("key")
@click.option("--default", default=None, help="Fallback if key not set")
def config_get(db_path, key, default):
    """Get a config key"""
    db = Storage(db_path)
    cur = db.conn.cursor()
    cur.execute("SELECT value, updated_at FROM config WHERE key=?", (key,))
    row = cur.fetchone()
    if not row:
        if default is None:
            default = POLICY_DEFAULTS.get(key)
        if default is not None:
            click.echo(f"{key}={default} (default)")
        else:
            click.echo(f"{key} not set")
        return
    click.echo(f"{key}={row['value']} (updated_at={row['updated_at']})")


@config.command("list")
@db_option
def config_list(db_path):
    """List all config keys"""
    rows = Storage(db_path).all_config()
    if not rows:
        click.echo("No config keys set.")
        return
    for row in rows:
        click.echo(f"{row['key']}={row['value']} (updated_at={row['updated_at']})")


# ---------------- Entrypoint ----------------
if __name__ == "__main__":
    cli()
