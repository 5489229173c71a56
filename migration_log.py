"""Console output for the migration tools."""
from datetime import datetime

RED = '\033[31m'
YELLOW = '\033[33m'
RESET = '\033[0m'


def log(message: str):
    print(f"[{datetime.now().strftime('%H:%M:%S')}] {message}")


def log_warning(message: str):
    print(f"{YELLOW}[WARN] {message}{RESET}")


def log_error(message: str):
    print(f"{RED}[ERROR] {message}{RESET}")


def log_banner(title: str, width: int = 60):
    log('=' * width)
    log(title)
    log('=' * width)
