# main.py
"""
Compare recommendation algorithms with repeated cross-validation.

Usage:
    python main.py <interactions file> <num songs to recommend> <num cross-validation folds> <num runs>

Examples:
    # 5 fixed folds, one run per fold
    python main.py data/train_triplets.txt 10 5 5

    # 10 runs over freshly shuffled 5-way splits
    python main.py data/interactions.csv 10 5 10 --seed 42
"""
import argparse
import logging
import sys

from music_recommender.config import EvaluationConfig
from music_recommender.data_loader import load_interactions
from music_recommender.exceptions import ConfigurationError
from music_recommender.system import MusicRecommenderSystem, build_algorithms

logger = logging.getLogger("music_recommender")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Evaluate music recommendation algorithms with cross-validation.")
    parser.add_argument("interactions", help="CSV (user_id,song_id,play_count) or tab-separated triplets file")
    parser.add_argument("recommendation_count", type=int, help="Songs to recommend per user")
    parser.add_argument("fold_count", type=int, help="Number of cross-validation folds")
    parser.add_argument("runs", type=int, help="Number of evaluation runs")
    randomize = parser.add_mutually_exclusive_group()
    randomize.add_argument("--randomize", dest="randomize", action="store_true", default=None,
                           help="Re-shuffle folds on every run (default: only when runs != folds)")
    randomize.add_argument("--no-randomize", dest="randomize", action="store_false")
    parser.add_argument("--seed", type=int, default=None, help="Seed for randomized folds")
    parser.add_argument("--min-user-songs", type=int, default=1, help="Drop users with fewer distinct songs")
    parser.add_argument("--n-jobs", type=int, default=1, help="Parallel workers for similarity tables")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(asctime)s - %(levelname)s - %(message)s")

    randomize = args.randomize if args.randomize is not None else args.runs != args.fold_count
    try:
        config = EvaluationConfig.from_mapping({
            "recommendation_count": args.recommendation_count,
            "fold_count": args.fold_count,
            "randomize_folds": randomize,
            "runs": args.runs,
        })
        logger.info("Dataset : %s, Song recommendations per user : %d, Cross validation folds : %d, Job runs : %d",
                    args.interactions, config.recommendation_count, config.fold_count, config.runs)

        dataset = load_interactions(args.interactions, min_user_interactions=args.min_user_songs)
        system = MusicRecommenderSystem(
            dataset, config,
            algorithms=build_algorithms(config.recommendation_count, n_jobs=args.n_jobs),
            random_state=args.seed,
        )
    except (ConfigurationError, FileNotFoundError, ValueError) as e:
        logger.error("%s", e)
        return 2

    report = system.run()
    print(report.summary().to_string(float_format=lambda value: f"{value:.2f}"))
    return 0


if __name__ == "__main__":
    sys.exit(main())
