from specgen.integrations.atlassian.client import AtlassianClient, adf_to_text, build_atlassian_client

__all__ = ["AtlassianClient", "adf_to_text", "build_atlassian_client"]
