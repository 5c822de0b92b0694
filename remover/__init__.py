"""Search cluster node remover package."""
from remover import _commands


def main():
    """Execute the search cluster node remover."""
    return _commands.dispatch()
