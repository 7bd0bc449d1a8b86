"""
halo-eli CLI entrypoint.

This module provides the console_script entrypoint for the halo_eli package.
"""


def main():
    """halo-eli CLI entrypoint."""
    from halo_eli.commands import halo_app

    halo_app()


if __name__ == "__main__":
    main()
