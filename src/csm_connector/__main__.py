"""Main entry point for csm_connector."""

from csm_connector.cli.main import main


if __name__ == "__main__":
    main()
