"""CLI entry point for the Personal Thinking Model."""

import json
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import DEFAULT_CONFIG, load_config
from .errors import PtmError
from .models import to_record

console = Console()


@click.group()
@click.option("--config", "-c", "config_path", default=None, help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Personal Thinking Model - growth, drift and influence analytics over your notes."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _get_config(ctx) -> dict:
    return load_config(ctx.obj.get("config_path"))


def _get_store(config: dict):
    from .storage import get_store
    return get_store(config)


def _print_json(obj) -> None:
    console.print_json(json.dumps(to_record(obj), ensure_ascii=False, default=str))


def _fmt(value, digits: int = 4) -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:.{digits}f}"
    return str(value)


def _snapshot_table(snapshot, title: str) -> Table:
    table = Table(title=title, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in snapshot.to_dict().items():
        if isinstance(value, list):
            continue
        table.add_row(key, _fmt(value))
    table.add_row(
        "cluster_weights",
        ", ".join(f"{w.cluster_id}:{w.weight:.2f}" for w in snapshot.cluster_weights) or "-",
    )
    table.add_row(
        "top_clusters_by_drift",
        ", ".join(f"{c.cluster_id}:{c.ratio:.2f}" for c in snapshot.top_clusters_by_drift) or "-",
    )
    return table


@cli.command()
@click.option("--path", default=None, help="Custom PTM home (default: ~/.ptm)")
@click.pass_context
def init(ctx, path):
    """Create the PTM home directory, config file and sqlite schema."""
    import yaml

    from .storage.sqlite import SqlitePtmStore

    home = Path(path).expanduser().resolve() if path else Path("~/.ptm").expanduser()
    console.print(f"[bold green]Initializing PTM at {home}[/]")
    home.mkdir(parents=True, exist_ok=True)

    config_file = home / "config.yaml"
    if not config_file.exists():
        cfg = dict(DEFAULT_CONFIG)
        cfg["db_path"] = str(home / "brain.db")
        cfg["chroma_path"] = str(home / "chroma")
        header = (
            "# Claude API key for persona descriptions (or set ANTHROPIC_API_KEY env var)\n"
            "# claude_api_key: sk-ant-your-key-here\n\n"
            "# Storage backend: sqlite (local), chromadb (local vectors) or bigquery (cloud)\n\n"
        )
        config_file.write_text(header + yaml.dump(cfg, default_flow_style=False))
        console.print(f"  Created config: {config_file}")

    db_path = home / "brain.db"
    SqlitePtmStore(str(db_path))
    console.print(f"  Database ready: {db_path}")
    console.print("[bold green]✓ PTM initialized![/]")


@cli.command()
@click.option("--date", default=None, help="Snapshot date (YYYY-MM-DD, default today)")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def today(ctx, date, as_json):
    """Compute today's snapshot without saving it."""
    from .snapshot.writer import generate_ptm_snapshot

    config = _get_config(ctx)
    try:
        snapshot = generate_ptm_snapshot(
            _get_store(config),
            date,
            drift_range_days=config["drift_range_days"],
            dynamics_range_days=config["dynamics_range_days"],
        )
    except PtmError as e:
        console.print(f"[red]{e}[/]")
        return

    if as_json:
        _print_json(snapshot)
        return
    console.print(_snapshot_table(snapshot, f"PTM snapshot {snapshot.date}"))


@cli.command()
@click.option("--date", default=None, help="Snapshot date (YYYY-MM-DD, default today)")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def capture(ctx, date, as_json):
    """Compute and save the snapshot for a date, replacing any earlier one."""
    from .snapshot.writer import capture_ptm_snapshot

    config = _get_config(ctx)
    try:
        snapshot = capture_ptm_snapshot(
            _get_store(config),
            date,
            drift_range_days=config["drift_range_days"],
            dynamics_range_days=config["dynamics_range_days"],
        )
    except PtmError as e:
        console.print(f"[red]{e}[/]")
        return

    if as_json:
        _print_json(snapshot)
        return
    console.print(f"[green]✓ Captured snapshot for {snapshot.date}[/]")
    console.print(f"  Mode: {snapshot.mode}  Season: {snapshot.season}  State: {snapshot.state}")


@cli.command()
@click.option("--limit", "-n", default=None, type=int, help="Number of snapshots")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def history(ctx, limit, as_json):
    """Show recently captured snapshots."""
    from .snapshot.writer import get_ptm_snapshot_history

    config = _get_config(ctx)
    snapshots = get_ptm_snapshot_history(_get_store(config), limit or config["history_limit"])

    if as_json:
        _print_json(snapshots)
        return
    if not snapshots:
        console.print("[yellow]No snapshots captured yet. Run 'ptm capture'.[/]")
        return

    table = Table(title="Snapshot History")
    table.add_column("Date", style="cyan")
    table.add_column("Notes", justify="right")
    table.add_column("Drift", justify="right")
    table.add_column("EMA", justify="right")
    table.add_column("Trend")
    table.add_column("State")
    table.add_column("Mode")
    table.add_column("Season")
    for s in snapshots:
        table.add_row(
            s.date, str(s.total_notes), _fmt(s.drift_today), _fmt(s.drift_ema),
            s.trend, s.state, s.mode, s.season,
        )
    console.print(table)


@cli.command()
@click.option("--date", default=None, help="Date (YYYY-MM-DD, default today)")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def insight(ctx, date, as_json):
    """Interpret today's snapshot in plain language."""
    from .snapshot.insight import generate_ptm_insight

    config = _get_config(ctx)
    try:
        result = generate_ptm_insight(_get_store(config), date)
    except PtmError as e:
        console.print(f"[red]{e}[/]")
        return

    if as_json:
        _print_json(result)
        return
    text = result.interpretation
    console.print(Panel(text.growth_summary, title="Growth", border_style="green"))
    console.print(Panel(text.influence_summary, title="Influence", border_style="blue"))
    console.print(Panel(text.stability_summary, title="Stability", border_style="magenta"))
    console.print(Panel(text.recommendation, title="Recommendation", border_style="yellow"))


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def summary(ctx, as_json):
    """Headline figures: notes, clusters, mode and season."""
    from .snapshot.writer import generate_ptm_summary

    config = _get_config(ctx)
    try:
        result = generate_ptm_summary(_get_store(config))
    except PtmError as e:
        console.print(f"[red]{e}[/]")
        return

    if as_json:
        _print_json(result)
        return
    console.print(f"\n[bold]PTM summary {result.date}[/]")
    console.print(f"  Notes: {result.total_notes}  Clusters: {result.cluster_count}")
    console.print(f"  Dominant cluster: {_fmt(result.dominant_cluster)}")
    console.print(f"  Mode: {result.mode}  Season: {result.season}")
    console.print(f"  Top drift cluster: {_fmt(result.top_drift_cluster)}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def core(ctx, as_json):
    """Cluster weights and the dominant cluster."""
    from .core import compute_core_metrics

    config = _get_config(ctx)
    try:
        metrics = compute_core_metrics(_get_store(config))
    except PtmError as e:
        console.print(f"[red]{e}[/]")
        return

    if as_json:
        _print_json(metrics)
        return
    console.print(f"Total notes: {metrics.total_notes}  Clusters: {metrics.cluster_count}")
    table = Table(title="Cluster Weights")
    table.add_column("Cluster", style="cyan", justify="right")
    table.add_column("Notes", justify="right")
    table.add_column("Weight", justify="right", style="green")
    for w in metrics.cluster_weights:
        marker = " ★" if w.cluster_id == metrics.dominant_cluster else ""
        table.add_row(f"{w.cluster_id}{marker}", str(w.note_count), _fmt(w.weight))
    console.print(table)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def influence(ctx, as_json):
    """Influence hubs and per-cluster influence."""
    from .influence.aggregator import compute_influence_metrics

    config = _get_config(ctx)
    metrics = compute_influence_metrics(_get_store(config))

    if as_json:
        _print_json(metrics)
        return
    console.print(f"Edges: {metrics.total_edges}  Average weight: {_fmt(metrics.avg_weight)}")
    console.print(f"Primary hub note: {_fmt(metrics.primary_hub_note)}")

    table = Table(title="Top Influencers")
    table.add_column("Note", style="cyan")
    table.add_column("Out weight", justify="right", style="green")
    table.add_column("Edges", justify="right")
    for i in metrics.top_influencers:
        table.add_row(i.note_id, _fmt(i.out_weight), str(i.edge_count))
    console.print(table)

    table = Table(title="Cluster Influence")
    table.add_column("Cluster", style="cyan", justify="right")
    table.add_column("Given", justify="right")
    table.add_column("Received", justify="right")
    for c in metrics.cluster_influence:
        table.add_row(str(c.cluster_id), _fmt(c.given), _fmt(c.received))
    console.print(table)


@cli.command()
@click.option("--range", "range_days", default=None, type=int, help="Window in days")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def dynamics(ctx, range_days, as_json):
    """Drift contributions, propagation, thinking mode and season."""
    from .dynamics.engine import compute_dynamics_metrics

    config = _get_config(ctx)
    metrics = compute_dynamics_metrics(_get_store(config), range_days or config["dynamics_range_days"])

    if as_json:
        _print_json(metrics)
        return
    console.print(f"Mode: [bold]{metrics.mode}[/]  Season: [bold]{metrics.season}[/]")

    table = Table(title="Drift Contribution")
    table.add_column("Cluster", style="cyan", justify="right")
    table.add_column("Drift", justify="right")
    table.add_column("Ratio", justify="right", style="green")
    for c in metrics.cluster_drift_contributions:
        table.add_row(str(c.cluster_id), _fmt(c.drift_sum), _fmt(c.ratio))
    console.print(table)

    if metrics.drift_propagation:
        table = Table(title="Drift Propagation")
        table.add_column("From", justify="right")
        table.add_column("To", justify="right")
        table.add_column("Effective", justify="right", style="green")
        for p in metrics.drift_propagation:
            table.add_row(str(p.source_cluster), str(p.target_cluster), _fmt(p.effective_influence))
        console.print(table)


@cli.command()
@click.option("--date", default=None, help="Date (YYYY-MM-DD, default today)")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def stability(ctx, date, as_json):
    """Cluster cohesion and stability for one date."""
    from .dynamics.engine import compute_stability_metrics

    config = _get_config(ctx)
    metrics = compute_stability_metrics(_get_store(config), date)

    if as_json:
        _print_json(metrics)
        return
    console.print(f"Average cohesion: {_fmt(metrics.avg_cohesion)}  Average stability: {_fmt(metrics.avg_stability)}")
    console.print(f"Most stable: {_fmt(metrics.most_stable_cluster)}  Most unstable: {_fmt(metrics.most_unstable_cluster)}")

    table = Table(title="Clusters")
    table.add_column("Cluster", style="cyan", justify="right")
    table.add_column("Cohesion", justify="right")
    table.add_column("Stability", justify="right")
    table.add_column("Notes", justify="right")
    for c in metrics.clusters:
        table.add_row(str(c.cluster_id), _fmt(c.cohesion), _fmt(c.stability_score), str(c.note_count))
    console.print(table)


@cli.command()
@click.option("--range", "range_days", default=None, type=int, help="Window in days")
@click.option("--phase", type=click.Choice(["creation", "destruction", "neutral"]), default=None,
              help="Today's creation/destruction phase")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def drift(ctx, range_days, phase, as_json):
    """Growth angle, forecast and overheat/stagnation warning."""
    from .drift.core import generate_drift_insight

    config = _get_config(ctx)
    result = generate_drift_insight(_get_store(config), range_days or config["drift_range_days"], phase)

    if as_json:
        _print_json(result)
        return
    console.print(
        f"Today: drift {_fmt(result.today_drift)}  EMA {_fmt(result.today_ema)}  "
        f"angle {result.angle.angle_degrees:.1f}° ({result.angle.trend})"
    )
    console.print(
        f"Forecast: 3d {_fmt(result.forecast.forecast_3d)}  7d {_fmt(result.forecast.forecast_7d)}"
        f"  [dim]({result.forecast.confidence} confidence)[/]"
    )
    style = "green" if result.warning.state == "stable" else "red"
    console.print(Panel(
        f"{result.extended_warning.insight}\n\n{result.advice}",
        title=f"{result.mode} · {result.extended_warning.extended_type}",
        border_style=style,
    ))


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def clusters(ctx, as_json):
    """Identity of every analyzed cluster."""
    from .clustering.identity import get_all_cluster_identities

    config = _get_config(ctx)
    try:
        identities = get_all_cluster_identities(_get_store(config), config["max_workers"])
    except PtmError as e:
        console.print(f"[red]{e}[/]")
        return

    if as_json:
        _print_json(identities)
        return
    if not identities:
        console.print("[yellow]No clusters analyzed yet.[/]")
        return

    table = Table(title="Clusters")
    table.add_column("Cluster", style="cyan", justify="right")
    table.add_column("Notes", justify="right")
    table.add_column("Cohesion", justify="right")
    table.add_column("Drift share", justify="right", style="green")
    table.add_column("Trend")
    table.add_column("Keywords")
    for i in identities:
        table.add_row(
            str(i.cluster_id), str(i.note_count), _fmt(i.cohesion),
            _fmt(i.drift.contribution), i.drift.trend, ", ".join(i.keywords),
        )
    console.print(table)


@cli.command()
@click.argument("cluster_id", type=int)
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def identity(ctx, cluster_id, as_json):
    """Identity of one cluster."""
    from .clustering.identity import get_cluster_identity

    config = _get_config(ctx)
    try:
        result = get_cluster_identity(_get_store(config), cluster_id, config["max_workers"])
    except PtmError as e:
        console.print(f"[red]{e}[/]")
        return

    if result is None:
        console.print(f"[yellow]Cluster {cluster_id} has not been analyzed yet.[/]")
        return
    if as_json:
        _print_json(result)
        return

    console.print(f"\n[bold]Cluster {result.cluster_id}[/] ({result.note_count} notes, cohesion {_fmt(result.cohesion)})")
    console.print(f"  Keywords: {', '.join(result.keywords) or '-'}")
    console.print(f"  Drift: share {_fmt(result.drift.contribution)}, trend {result.drift.trend}")
    console.print(f"  Influence: hubness {_fmt(result.influence.hubness)}, authority {_fmt(result.influence.authority)}")
    if result.representatives:
        console.print("\n  [bold]Representative notes:[/]")
        for r in result.representatives:
            console.print(f"    {r.cosine:.3f}  {r.title}")


@cli.command()
@click.option("--date", default=None, help="Date (YYYY-MM-DD, default today)")
@click.option("--full", is_flag=True, help="Include every identity and interaction")
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def meta(ctx, date, full, as_json):
    """Cluster roles and coaching advice."""
    from .engine import generate_meta_state_full, generate_meta_state_lite

    config = _get_config(ctx)
    generate = generate_meta_state_full if full else generate_meta_state_lite
    try:
        state = generate(_get_store(config), date, config["max_workers"])
    except PtmError as e:
        console.print(f"[red]{e}[/]")
        return

    if as_json:
        _print_json(state)
        return

    table = Table(title=f"Top clusters {state.date}")
    table.add_column("Cluster", style="cyan", justify="right")
    table.add_column("Role")
    table.add_column("Drift share", justify="right", style="green")
    table.add_column("Keywords")
    for c in state.top_clusters:
        table.add_row(str(c.cluster_id), c.role, _fmt(c.drift_contribution), ", ".join(c.keywords))
    console.print(table)

    coach = state.coach
    body = f"Today: {coach.today}\nTomorrow: {coach.tomorrow}\nBalance: {coach.balance}"
    if coach.warning:
        body += f"\n\n[red]{coach.warning}[/]"
    console.print(Panel(body, title="Coach", border_style="green"))


@cli.command()
@click.argument("cluster_id", type=int, required=False)
@click.option("--json", "as_json", is_flag=True, help="Print JSON")
@click.pass_context
def persona(ctx, cluster_id, as_json):
    """Describe clusters as personas with Claude."""
    from .clustering.identity import get_all_cluster_identities, get_cluster_identity
    from .enrichment.persona import PersonaEnricher

    config = _get_config(ctx)
    try:
        enricher = PersonaEnricher(config)
    except ValueError as e:
        console.print(f"[red]{e}[/]")
        return

    store = _get_store(config)
    if cluster_id is not None:
        found = get_cluster_identity(store, cluster_id, config["max_workers"])
        identities = [found] if found else []
    else:
        identities = get_all_cluster_identities(store, config["max_workers"])

    if not identities:
        console.print("[yellow]No analyzed clusters to describe.[/]")
        return

    console.print(f"[blue]Describing {len(identities)} cluster(s) with Claude...[/]")
    results = enricher.describe_all(identities)

    if as_json:
        console.print_json(json.dumps(results, ensure_ascii=False))
        return
    for r in results:
        if "error" in r:
            console.print(f"  [red]Cluster {r['cluster_id']}: {r['error']}[/]")
        else:
            console.print(f"  [green]Cluster {r['cluster_id']}: {r.get('name') or 'N/A'}[/]")
            if r.get("one_liner"):
                console.print(f"    {r['one_liner']}")


if __name__ == "__main__":
    cli()
