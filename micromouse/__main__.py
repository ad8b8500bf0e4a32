"""Main entry point: runs a timer-driven training session without a window."""

import argparse
import logging
import signal
import sys

from PySide6.QtCore import QCoreApplication


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Watch a micromouse learn a maze")
    parser.add_argument("--generations", type=int, default=200, help="Generations to run before quitting")
    parser.add_argument("--maze-size", type=int, default=21, help="Maze width and height (made odd)")
    parser.add_argument("--seed", type=int, help="Random seed for maze and agent")
    parser.add_argument("--steps-per-tick", type=int, default=50, help="Learning steps per timer tick")
    parser.add_argument("--tick-ms", type=int, default=1, help="Timer interval in milliseconds")
    parser.add_argument("--pause-ms", type=int, default=0, help="Pause after each successful run")
    parser.add_argument("--load", type=str, help="Q-table key to load before training")
    parser.add_argument("--save", type=str, help="Q-table key to save after training")
    parser.add_argument("--store-dir", type=str, default="saved_qtables", help="Directory for saved Q-tables")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every finished generation")
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point for the headless micromouse session."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = QCoreApplication.instance() or QCoreApplication(sys.argv)
    app.setApplicationName("Micromouse")
    app.setApplicationVersion("1.0.0")

    from .app.controller import MicromouseController
    from .domain.types import RLConfig
    from .utils.qtable_store import QTableStore

    config = RLConfig(
        maze_size=args.maze_size,
        steps_per_tick=args.steps_per_tick,
        tick_interval_ms=args.tick_ms,
        success_pause_ms=args.pause_ms,
    )
    controller = MicromouseController(config, seed=args.seed, store=QTableStore(args.store_dir))
    session = controller.session

    print(f"🐭 Maze {session.maze.width}x{session.maze.height}, "
          f"start {session.maze.start} -> goal {session.maze.end}")
    print(session.maze.render_ascii())

    if args.load:
        if controller.load_q_table(args.load):
            print(f"📂 Loaded Q-table '{args.load}' ({len(session.agent.q_table)} states)")
        else:
            print(f"❌ Could not load Q-table '{args.load}', starting fresh")

    def on_episode(episode):
        status = "🧀" if episode.reached_goal else "⏱️ "
        print(f"{status} Gen {episode.number:4d}: {episode.steps:5d} steps, "
              f"reward {episode.total_reward:8.1f}, epsilon {episode.epsilon_used:.3f}")
        if episode.number + 1 >= args.generations:
            app.quit()

    def on_solved(steps):
        print(f"🏁 Route settled at {steps} steps")
        app.quit()

    def on_error(message):
        print(f"❌ {message}")
        app.exit(1)

    controller.episode_completed.connect(on_episode)
    controller.maze_solved.connect(on_solved)
    controller.error_occurred.connect(on_error)

    def signal_handler(sig, frame):
        """Handle system signals for graceful shutdown."""
        print(f"\nReceived signal {sig}, shutting down gracefully...")
        controller.cleanup()
        app.quit()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        if not controller.start_training():
            print("❌ Could not start training")
            return 1
        exit_code = app.exec()
    finally:
        controller.cleanup()

    controller.pause_training()
    if args.save:
        if controller.save_q_table(args.save):
            print(f"💾 Saved Q-table as '{args.save}'")
        else:
            exit_code = exit_code or 1

    stats = controller.get_statistics()
    print(f"\n📊 Generations: {stats['generation'] + 1}, successful runs: {stats['successful_runs']}, "
          f"best: {stats['best_steps']}, Q-table states: {stats['q_table_size']}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
