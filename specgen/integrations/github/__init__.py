from specgen.integrations.github.client import GitHubClient, build_file_tree, build_github_client

__all__ = ["GitHubClient", "build_file_tree", "build_github_client"]
