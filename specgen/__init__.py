"""specgen - specification documents from GitHub and Jira, published to Confluence."""

__version__ = "0.1.0"
