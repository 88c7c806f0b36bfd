"""
Command-line interface for pool dispatch.
Provides commands for database setup, board views and route optimization.
"""

import asyncio
import logging
from datetime import datetime

import click

from .errors import DispatchError
from .service import DispatchService


logger = logging.getLogger(__name__)


@click.group()
@click.option('--config', default='config/params.yaml', help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def main(ctx, config: str, verbose: bool):
    """Pool Dispatch CLI."""
    # Setup logging
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Store config path in context
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config


@main.command()
@click.pass_context
def init_db(ctx):
    """Create database tables."""
    service = DispatchService(ctx.obj['config_path'])
    click.echo(f"Database ready: {service.config.database.url}")
    asyncio.run(service.close())


@main.command()
@click.option('--org', 'organization_id', type=int, required=True, help='Organization id')
@click.option('--date', default=None, help='Board date (YYYY-MM-DD, default: today)')
@click.pass_context
def board(ctx, organization_id: int, date: str):
    """Show the daily dispatch board."""
    service = DispatchService(ctx.obj['config_path'])
    try:
        result = service.daily_board(organization_id, date or datetime.now().strftime('%Y-%m-%d'))
    except DispatchError as e:
        raise click.ClickException(e.detail)
    finally:
        asyncio.run(service.close())

    click.echo(f"Dispatch board for {result.date} ({result.day_of_week.value}):")
    for tech in result.technicians:
        click.echo(f"\n  {tech.name} [{tech.status.value}] "
                   f"stops={tech.total_stops} hours={tech.estimated_hours:.2f}")
        for route in tech.routes:
            click.echo(f"    Route {route.id} - {route.name}")
            for stop in route.stops:
                name = stop.client.name if stop.client else f"client {stop.client_id}"
                click.echo(f"      {stop.order_index + 1}. {name} ({stop.estimated_duration} min)")

    if result.unassigned_routes:
        click.echo("\n  Routes without a technician:")
        for route in result.unassigned_routes:
            click.echo(f"    Route {route.id} - {route.name} ({len(route.stops)} stops)")

    if result.unassigned_jobs:
        click.echo("\n  Unassigned jobs:")
        for job in result.unassigned_jobs:
            name = job.client.name if job.client else f"client {job.client_id}"
            click.echo(f"    Job {job.id}: {name} ({job.type})")


@main.command()
@click.option('--org', 'organization_id', type=int, required=True, help='Organization id')
@click.option('--week-start', required=True, help='First day of the week (YYYY-MM-DD)')
@click.pass_context
def workload(ctx, organization_id: int, week_start: str):
    """Show weekly stops and hours per technician."""
    service = DispatchService(ctx.obj['config_path'])
    try:
        rows = service.weekly_workload(organization_id, week_start)
    except DispatchError as e:
        raise click.ClickException(e.detail)
    finally:
        asyncio.run(service.close())

    click.echo(f"Technician workload for week of {week_start}:")
    for row in rows:
        per_day = " ".join(f"{day.value[:3]}={count}" for day, count in row.days.items())
        click.echo(f"  {row.name}: {per_day} total={row.total_stops} hours={row.estimated_hours:.2f}")


@main.command()
@click.option('--org', 'organization_id', type=int, required=True, help='Organization id')
@click.argument('route_id', type=int)
@click.pass_context
def optimize(ctx, organization_id: int, route_id: int):
    """Re-optimize the stop order of a route."""

    async def _optimize():
        service = DispatchService(ctx.obj['config_path'])

        try:
            click.echo(f"Optimizing route {route_id}...")
            result = await service.optimize_route(organization_id, route_id)

            click.echo(f"\nOptimization completed:")
            click.echo(f"  Method: {result.method.value}" + (" (degraded)" if result.degraded else ""))
            if result.message:
                click.echo(f"  Note: {result.message}")
            for stop in result.stops:
                name = stop.client.name if stop.client else f"client {stop.client_id}"
                click.echo(f"  {stop.order_index + 1}. {name}")

            if result.driving_times:
                total = sum(leg.duration_seconds for leg in result.driving_times)
                click.echo(f"\n  Driving time: {total / 60:.1f} min over {len(result.driving_times)} legs")

        except DispatchError as e:
            logger.error(f"Optimization failed: {e.detail}")
            raise click.ClickException(e.detail)
        finally:
            await service.close()

    asyncio.run(_optimize())


@main.command()
@click.option('--host', default='0.0.0.0', help='Bind address')
@click.option('--port', default=8000, type=int, help='Bind port')
@click.option('--reload', is_flag=True, help='Reload on code changes')
def serve(host: str, port: int, reload: bool):
    """Start the FastAPI server."""
    import uvicorn

    click.echo("Starting Pool Dispatch API server...")
    click.echo(f"API documentation available at: http://{host}:{port}/docs")
    uvicorn.run("pool_dispatch.api:app", host=host, port=port, reload=reload)


if __name__ == '__main__':
    main()
