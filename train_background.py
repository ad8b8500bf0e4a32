#!/usr/bin/env python3
"""
Background training script for the micromouse agent.
Trains synchronously without any timer and saves the Q-table at regular intervals.
"""

import sys
from pathlib import Path
import argparse
import logging

# Add the project root to Python path
sys.path.append(str(Path(__file__).parent))

from micromouse.domain.driver import TrainingSession
from micromouse.domain.maze import Maze
from micromouse.domain.types import RLConfig
from micromouse.utils.qtable_store import QTableStore, DEFAULT_KEY, BEST_RUN_KEY, attach_best_run_autosave


def create_checkpoint_callback(session: TrainingSession, store: QTableStore, key: str, interval: int):
    """Create a callback that saves the Q-table every ``interval`` generations."""
    def save_checkpoint(episode):
        if interval <= 0 or (episode.number + 1) % interval:
            return
        if store.write(session.agent.export_q_table(), key):
            print(f"✅ Checkpoint saved at generation {episode.number}: {store.path_for(key)}")
        else:
            print(f"❌ Failed to save checkpoint at generation {episode.number}")

    return save_checkpoint


def load_layout_file(path: str):
    """Load a maze drawn with '#' walls and '.' paths ('S' start, 'G' goal)."""
    try:
        with open(path, "r") as f:
            rows = [line.rstrip("\n") for line in f if line.strip()]
        return Maze.from_layout(rows)
    except (OSError, ValueError) as e:
        print(f"Error loading maze: {e}")
        return None


def main():
    parser = argparse.ArgumentParser(description="Background micromouse training with checkpoints")
    parser.add_argument("--maze", type=str, help="Path to a text maze layout")
    parser.add_argument("--episodes", type=int, default=2000, help="Number of generations to train")
    parser.add_argument("--checkpoint-interval", type=int, default=200, help="Generations between checkpoints")
    parser.add_argument("--maze-size", type=int, default=15, help="Size for generated maze (if no maze file)")
    parser.add_argument("--seed", type=int, help="Random seed for maze generation and exploration")
    parser.add_argument("--max-steps", type=int, default=5000, help="Attempts before a run is stopped (0 = no cap)")
    parser.add_argument("--load", type=str, help="Q-table key to continue from")
    parser.add_argument("--save", type=str, default=DEFAULT_KEY, help="Q-table key to save to")
    parser.add_argument("--store-dir", type=str, default="saved_qtables", help="Directory for saved Q-tables")
    parser.add_argument("--autosave-best", action="store_true",
                        help=f"Save the Q-table of every new best run as '{BEST_RUN_KEY}'")
    parser.add_argument("--replay", action="store_true", help="Enable experience replay")
    parser.add_argument("--adaptive-lr", action="store_true", help="Enable adaptive learning rate")

    args = parser.parse_args()
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    print("🧠 Micromouse Background Training")
    print("=" * 50)

    config = RLConfig(
        maze_size=args.maze_size,
        max_steps_per_episode=args.max_steps,
        use_experience_replay=args.replay,
        adaptive_learning_rate=args.adaptive_lr,
    )

    # Load or generate maze
    maze = None
    if args.maze:
        print(f"📁 Loading maze from: {args.maze}")
        maze = load_layout_file(args.maze)
        if maze is None:
            print("❌ Failed to load maze. Exiting.")
            return 1
    else:
        print(f"🎲 Generating new maze: {args.maze_size}x{args.maze_size}")

    session = TrainingSession(config, seed=args.seed, maze=maze)
    store = QTableStore(args.store_dir)

    print(f"📐 Grid: {session.maze.width}x{session.maze.height}")
    print(f"🎯 Start: {session.maze.start} → Goal: {session.maze.end}")
    print(f"🧭 Shortest route: {session.maze.shortest_path_length()} steps")

    if args.load:
        print(f"📂 Loading Q-table: {args.load}")
        if session.load_q_table(store, args.load):
            print(f"✅ Q-table loaded: {len(session.agent.q_table)} states")
        else:
            print("❌ Failed to load Q-table. Starting fresh.")

    session.on_episode_end(create_checkpoint_callback(session, store, args.save, args.checkpoint_interval))
    if args.autosave_best:
        attach_best_run_autosave(session, store)

    # Display training configuration
    print(f"\n⚙️  Training Configuration:")
    print(f"   Generations: {args.episodes}")
    print(f"   Checkpoint interval: {args.checkpoint_interval}")
    print(f"   Learning rate: {config.learning_rate}")
    print(f"   Epsilon: {config.epsilon} → {config.epsilon_min}")
    print(f"   Step cap: {config.max_steps_per_episode or 'none'}")

    def report(episode):
        if (episode.number + 1) % 100 == 0:
            print(f"   Gen {episode.number + 1}: {episode.steps} steps, epsilon {episode.epsilon_used:.3f}")

    print(f"\n🚀 Starting background training...")
    try:
        result = session.train(args.episodes, progress=report)
    except KeyboardInterrupt:
        print(f"\n⏹️  Training interrupted by user")
        session.pause()
        session.save_q_table(store, args.save)
        return 1

    # Display results
    print(f"\n🎉 Training completed!")
    print(f"   Total generations: {result.total_episodes}")
    print(f"   Successful runs: {result.successful_episodes}")
    print(f"   Success rate: {result.success_rate:.1%}")
    print(f"   Average reward: {result.average_reward:.2f}")
    print(f"   Final epsilon: {result.final_epsilon:.3f}")
    if result.average_steps is not None:
        print(f"   Average steps to goal: {result.average_steps:.1f}")
    print(f"   Best run: {result.best_steps} steps")
    print(f"   Route settled: {result.solved_optimally}")

    if session.save_q_table(store, args.save):
        print(f"💾 Q-table saved: {store.path_for(args.save)}")
        return 0
    print("❌ Failed to save Q-table")
    return 1


if __name__ == "__main__":
    sys.exit(main())
