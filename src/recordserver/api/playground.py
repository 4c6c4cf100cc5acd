"""
GraphiQL page for the GraphQL endpoint.

Loads GraphiQL from a CDN; nothing is bundled with the package.
"""

from __future__ import annotations

GRAPHIQL_VERSION = "3"


def get_graphiql_html(*, endpoint: str = "/graphql", title: str = "recordserver GraphiQL") -> str:
    """
    Get GraphiQL HTML pointed at an endpoint.

    Args:
        endpoint: URL of the GraphQL endpoint
        title: Page title
    """
    return f"""<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>{title}</title>
    <style>body {{ margin: 0; height: 100vh; }} #graphiql {{ height: 100vh; }}</style>
    <link rel="stylesheet" href="https://unpkg.com/graphiql@{GRAPHIQL_VERSION}/graphiql.min.css" />
  </head>
  <body>
    <div id="graphiql">Loading...</div>
    <script crossorigin src="https://unpkg.com/react@18/umd/react.production.min.js"></script>
    <script crossorigin src="https://unpkg.com/react-dom@18/umd/react-dom.production.min.js"></script>
    <script crossorigin src="https://unpkg.com/graphiql@{GRAPHIQL_VERSION}/graphiql.min.js"></script>
    <script>
      const fetcher = GraphiQL.createFetcher({{ url: "{endpoint}" }});
      ReactDOM.createRoot(document.getElementById("graphiql")).render(
        React.createElement(GraphiQL, {{ fetcher }})
      );
    </script>
  </body>
</html>
"""
