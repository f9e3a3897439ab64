#!/usr/bin/env python3
"""
ScoreMate - Snooker score tracker
Command-line entry point: read a scoreboard photo, check a frame score,
print statistics for a user, or start the web API.
"""

import argparse
import json
import logging
import os
import sys
from typing import Dict, List, Optional

from colorama import init, Fore, Style
from dotenv import load_dotenv

# Initialize colorama for cross-platform colored terminal output
init(autoreset=True)

DEFAULT_GEMINI_MODEL = 'gemini-2.5-flash'

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(level: str = 'WARNING') -> logging.Logger:
    """Configure the root ScoreMate logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to WARNING so normal use is quiet.

    Returns:
        Configured logger instance.
    """
    numeric = getattr(logging, str(level).upper(), logging.WARNING)
    logger = logging.getLogger('scoremate')
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
        logger.addHandler(handler)
    logger.setLevel(numeric)
    return logger


logger = setup_logging(os.getenv('SCOREMATE_LOG_LEVEL', 'WARNING'))


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

_PLACEHOLDER_VALUES = {'YOUR_GEMINI_API_KEY_HERE', 'YOUR_SECRET_KEY_HERE', 'CHANGE_ME'}


def is_placeholder_value(value: str) -> bool:
    """Check if a value is a placeholder sentinel that should not be used for real API calls."""
    if not value or not isinstance(value, str):
        return True
    return value.startswith('YOUR_') or value in _PLACEHOLDER_VALUES


def load_config(config_path: str = 'config.json') -> Dict:
    """Load configuration from an optional JSON file plus the environment.

    Environment variables (``.env`` is read first) take precedence:
    - GEMINI_API_KEY (or GOOGLE_API_KEY) overrides gemini_api_key
    - GEMINI_MODEL overrides gemini_model
    - SCOREMATE_SECRET_KEY overrides secret_key

    Placeholder values are dropped so callers only ever see usable settings.
    """
    load_dotenv()
    config: Dict = {}
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                config = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Could not read config file {config_path}: {e}")
            config = {}

    api_key = os.getenv('GEMINI_API_KEY') or os.getenv('GOOGLE_API_KEY')
    if api_key:
        config['gemini_api_key'] = api_key
    if os.getenv('GEMINI_MODEL'):
        config['gemini_model'] = os.getenv('GEMINI_MODEL')
    if os.getenv('SCOREMATE_SECRET_KEY'):
        config['secret_key'] = os.getenv('SCOREMATE_SECRET_KEY')

    for key in ('gemini_api_key', 'secret_key'):
        if key in config and is_placeholder_value(config[key]):
            del config[key]
    config.setdefault('gemini_model', DEFAULT_GEMINI_MODEL)
    return config


def build_extraction_service(config: Dict):
    """Create an ExtractionService backed by a live Gemini client.

    Raises:
        GeminiAuthError: no API key is configured.
    """
    from gemini_client import GeminiClient
    from app.services import ExtractionService

    client = GeminiClient(
        api_key=config.get('gemini_api_key', ''),
        model=config.get('gemini_model', DEFAULT_GEMINI_MODEL),
    )
    return ExtractionService(client)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_extract(args) -> int:
    from gemini_client import GeminiAuthError
    from app.services import ExtractionError
    from app.services.extraction_service import mime_type_for

    mime_type = mime_type_for(args.image)
    if not mime_type:
        print(f"{Fore.RED}Error: unsupported image type: {args.image}")
        return 2
    try:
        with open(args.image, 'rb') as f:
            image_bytes = f.read()
    except OSError as e:
        print(f"{Fore.RED}Error reading {args.image}: {e}")
        return 2

    try:
        service = build_extraction_service(load_config(args.config))
        result = service.extract(image_bytes, mime_type)
    except GeminiAuthError as e:
        print(f"{Fore.RED}Error: {e}")
        print(f"{Fore.YELLOW}Set GEMINI_API_KEY in your environment or .env file.")
        print(f"{Fore.YELLOW}Get a key at: https://aistudio.google.com/apikey")
        return 1
    except ExtractionError as e:
        print(f"{Fore.RED}{e}")
        return 1

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
        return 0

    print(f"{Fore.CYAN}{Style.BRIGHT}{result.player1_name} vs {result.player2_name}")
    print(f"{Fore.YELLOW}Fouls: {Fore.WHITE}{result.player1_total_foul_points} - "
          f"{result.player2_total_foul_points}")
    for number, frame in enumerate(result.frames, start=1):
        tag = f" {Fore.MAGENTA}[{frame.tag}]" if frame.tag else ''
        print(f"{Fore.GREEN}Frame {number:>2}: {Fore.WHITE}"
              f"{frame.player1_score}-{frame.player2_score}{tag}")
    return 0


def cmd_verify(args) -> int:
    from app.services import ValidationService

    result = ValidationService().verify_score_entry(args.player1_score, args.player2_score)
    if result.is_valid:
        print(f"{Fore.GREEN}Score {args.player1_score}-{args.player2_score} looks valid.")
        return 0
    print(f"{Fore.RED}{result.warning_message}")
    return 1


def cmd_stats(args) -> int:
    import database
    from app.services import MatchService, StatsService

    if not database.init_db():
        print(f"{Fore.RED}Error: database is not available ({database.DATABASE_URL})")
        return 1
    db = next(database.get_db())
    try:
        if not database.user_exists(db, args.user):
            print(f"{Fore.RED}Error: unknown user '{args.user}'")
            return 1
        matches = MatchService(database).list(db, args.user)
    finally:
        db.close()

    summary = StatsService().summary(matches, args.period)
    if args.json:
        print(json.dumps(summary, indent=2))
        return 0

    print(f"{Fore.CYAN}{Style.BRIGHT}Statistics for {args.user} "
          f"({summary['totalMatches']} matches, by {args.period})")
    for bucket in summary['activity']:
        print(f"{Fore.YELLOW}{bucket['period']}: {Fore.WHITE}{bucket['totalMatches']} matches, "
              f"{bucket['totalFrames']} frames, {bucket['avgFramesPerMatch']} frames/match")
    for bucket in summary['playerWins']:
        wins = ', '.join(f"{name} {count}" for name, count in bucket['wins'].items())
        print(f"{Fore.GREEN}Wins {bucket['period']}: {Fore.WHITE}{wins}")
    if summary['bestPlays']:
        print(f"\n{Fore.CYAN}Best plays:")
        for play in summary['bestPlays']:
            print(f"  {Fore.WHITE}{play['score']:>3} {play['player']} "
                  f"({play['frame']}, {play['date']})")
    return 0


def cmd_serve(args) -> int:
    import scoremate_web

    scoremate_web.run(host=args.host, port=args.port, debug=args.debug)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='scoremate',
        description='ScoreMate - Snooker score tracker',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  scoremate extract board.jpg          # Read a scoreboard photo
  scoremate extract board.jpg --json   # Same, as JSON
  scoremate verify 72 150              # Check a frame score
  scoremate stats --user alice         # Monthly statistics
  scoremate serve --port 5000          # Start the web API
        """
    )
    parser.add_argument(
        '--config', '-c',
        default='config.json',
        help='Path to config file (default: config.json)'
    )
    parser.add_argument(
        '--log-level',
        default=None,
        help='Log level (DEBUG, INFO, WARNING, ERROR)'
    )
    sub = parser.add_subparsers(dest='command')

    p_extract = sub.add_parser('extract', help='Read match data from a scoreboard photo')
    p_extract.add_argument('image', help='Path to the image file')
    p_extract.add_argument('--json', action='store_true', help='Print JSON instead of text')
    p_extract.set_defaults(func=cmd_extract)

    p_verify = sub.add_parser('verify', help='Check a single frame score')
    p_verify.add_argument('player1_score', type=int)
    p_verify.add_argument('player2_score', type=int)
    p_verify.set_defaults(func=cmd_verify)

    p_stats = sub.add_parser('stats', help='Show statistics for a user')
    p_stats.add_argument('--user', '-u', required=True, help='Username')
    p_stats.add_argument('--period', choices=['month', 'year'], default='month')
    p_stats.add_argument('--json', action='store_true', help='Print JSON instead of text')
    p_stats.set_defaults(func=cmd_stats)

    p_serve = sub.add_parser('serve', help='Start the web API')
    p_serve.add_argument('--host', default='127.0.0.1')
    p_serve.add_argument('--port', type=int, default=5000)
    p_serve.add_argument('--debug', action='store_true')
    p_serve.set_defaults(func=cmd_serve)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.log_level:
        setup_logging(args.log_level)
    if not getattr(args, 'func', None):
        parser.print_help()
        return 2
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
