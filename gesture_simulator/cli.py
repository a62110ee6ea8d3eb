"""
Command-Line Interface for the gesture simulator.
Uses 'click' for CLI argument parsing and command structure.
"""
import asyncio
import click
import logging
import signal
from typing import Optional

from smart_gesture.simulator_binding import DEFAULT_SIMULATOR_HOST
from smart_gesture.simulator_binding import DEFAULT_SIMULATOR_PORT

from .engine_model import SimulatedEngine
from .virtual_engine_server import VirtualEngineServer
from .interface.config_manager import ConfigurationManager, SimulatorConfig
from .interface.http_debug_server import DebugHTTPServer
from .interface.rich_dashboard import RichDashboard

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("GestureSimulatorCLI")


async def shutdown(sig, loop, server, tasks):
    """Graceful shutdown for the simulator."""
    logger.info(f"Received exit signal {sig.name}...")
    for name, task in tasks.items():
        if task is not None and not task.done():
            logger.info(f"Cancelling {name} task...")
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.info(f"{name.capitalize()} task cancelled successfully.")
            except Exception as e:
                logger.error(f"Error during {name} shutdown: {e}")
    await server.stop()

    outstanding = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
    if outstanding:
        logger.info(f"Cancelling {len(outstanding)} outstanding tasks...")
        for task in outstanding:
            task.cancel()
        await asyncio.gather(*outstanding, return_exceptions=True)

    if loop.is_running():
        loop.stop()
    logger.info("Simulator shutdown complete.")


@click.command()
@click.option("--host", default=DEFAULT_SIMULATOR_HOST, help="Host for the simulator server.", show_default=True)
@click.option("--port", default=DEFAULT_SIMULATOR_PORT, type=int, help="Port for the simulator server.", show_default=True)
@click.option(
    "--latency-ms",
    default=0.0,
    type=float,
    help="Simulated engine latency per request in milliseconds.",
    show_default=True,
)
@click.option(
    "--score-noise",
    default=0.0,
    type=float,
    help="Standard deviation of noise added to common recognizer scores.",
    show_default=True,
)
@click.option("--seed", default=None, type=int, help="Seed for the score noise generator.")
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level for the simulator.",
    show_default=True,
)
@click.option("--debug-api", is_flag=True, help="Enable HTTP debug API server for programmatic access.")
@click.option("--debug-api-port", default=8766, type=int, help="Port for HTTP debug API server.", show_default=True)
@click.option("--dashboard", is_flag=True, help="Enable Rich console dashboard for real-time monitoring.")
@click.option("--refresh-rate", default=500, type=int, help="Dashboard refresh rate in milliseconds.", show_default=True)
@click.option("--no-color", is_flag=True, help="Disable color output for compatibility.")
@click.option("--config-profile", type=str, help="Load configuration from named profile.")
@click.option("--save-config", type=str, help="Save current configuration as named profile.")
@click.option("--config-dir", type=str, help="Directory for configuration files (default: ~/.gesture_simulator_config).")
def main(
    host: str,
    port: int,
    latency_ms: float,
    score_noise: float,
    seed: Optional[int],
    log_level: str,
    debug_api: bool,
    debug_api_port: int,
    dashboard: bool,
    refresh_rate: int,
    no_color: bool,
    config_profile: Optional[str],
    save_config: Optional[str],
    config_dir: Optional[str],
):
    """
    Gesture recognition engine simulator.

    Serves a simulated recognition engine over TCP so the smart-gesture
    library can be developed and tested without the native engine.
    """
    config_manager = ConfigurationManager(config_dir)
    if config_profile:
        loaded = config_manager.load_config(config_profile)
        if loaded is None:
            logger.error(f"Failed to load configuration profile: {config_profile}")
            return
        logger.info(f"Loaded configuration profile: {config_profile}")
        host, port = loaded.host, loaded.port
        latency_ms, score_noise, seed = loaded.latency_ms, loaded.score_noise, loaded.seed
        log_level = loaded.log_level
        debug_api, debug_api_port = loaded.debug_api, loaded.debug_api_port
        dashboard, refresh_rate = loaded.dashboard, loaded.refresh_rate
    else:
        config_manager.current_config = SimulatorConfig(
            host=host,
            port=port,
            debug_api_port=debug_api_port,
            latency_ms=latency_ms,
            score_noise=score_noise,
            seed=seed,
            log_level=log_level.upper(),
            refresh_rate=refresh_rate,
            debug_api=debug_api,
            dashboard=dashboard,
        )

    numeric_log_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.getLogger().setLevel(numeric_log_level)
    logger.setLevel(numeric_log_level)
    logging.getLogger("SimulatedEngine").setLevel(numeric_log_level)

    logger.info("Starting gesture simulator...")
    logger.info(f"Config: Host={host}, Port={port}, Latency={latency_ms}ms, Noise={score_noise}, Seed={seed}")

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    engine = SimulatedEngine(score_noise=score_noise, seed=seed)
    server = VirtualEngineServer(engine, loop)
    server.set_latency(latency_ms)

    tasks = {"server": loop.create_task(server.start_server(host, port))}

    if debug_api:
        debug_server = DebugHTTPServer(server, debug_api_port, "127.0.0.1", config_manager=config_manager)
        tasks["debug server"] = loop.create_task(debug_server.start_server())
        logger.info(f"Debug API server starting on http://127.0.0.1:{debug_api_port}")
        logger.info(f"API documentation available at http://127.0.0.1:{debug_api_port}/docs")

    if dashboard:
        dashboard_instance = RichDashboard(server, refresh_rate_ms=refresh_rate, no_color=no_color)
        tasks["dashboard"] = loop.create_task(dashboard_instance.run())
        logger.info(f"Rich dashboard started with {refresh_rate}ms refresh rate")

    for s in (signal.SIGHUP, signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            s, lambda s=s: asyncio.ensure_future(shutdown(s, loop, server, tasks))
        )

    try:
        logger.info("Simulator server running. Press Ctrl+C to stop.")
        loop.run_forever()
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt received directly by CLI.")
    finally:
        logger.info("CLI main loop finalizing...")
        pending = [t for t in tasks.values() if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        loop.close()
        logger.info("Simulator CLI finished.")

    if save_config and config_manager.current_config:
        if config_manager.save_config(config_manager.current_config, save_config):
            logger.info(f"Configuration saved as profile: {save_config}")
        else:
            logger.error(f"Failed to save configuration profile: {save_config}")


if __name__ == "__main__":
    main()
