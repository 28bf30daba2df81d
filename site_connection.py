"""
Tests the connection to the live WordPress site through its REST index.
"""
from typing import Callable

from data_models import ConnectionReport, FetchResult, ReportEvent, WpConnectionDetails
from tracer import trace

REST_NAMESPACE = "wp/v2"


def rest_index_url(site_url: str) -> str:
    """Returns the REST index URL for a site base URL, e.g. 'https://x.org/wp-json/'."""
    base = site_url if site_url.endswith("/") else f"{site_url}/"
    return f"{base}wp-json/"


@trace
def check_site_connection(site_url: str, previous: WpConnectionDetails, fetch: Callable[[str], FetchResult]) -> ConnectionReport:
    """
    Fetches the site's REST index and describes the outcome.

    On failure the returned connection keeps the fields of `previous` with
    its status set to "error", and `error` holds the message to display.
    """
    events = [ReportEvent(level="info", message=f"Testing connection to: {site_url}")]
    result = fetch(rest_index_url(site_url))

    if result.ok and isinstance(result.data, dict):
        data = result.data
        namespaces = [str(ns) for ns in (data.get("namespaces") or [])]
        connection = WpConnectionDetails(
            status="connected",
            site_name=data.get("name") or "Unknown Site",
            site_description=data.get("description") or "",
            version="REST API Active" if REST_NAMESPACE in namespaces else "Legacy",
            namespaces=namespaces,
        )
        events.append(
            ReportEvent(
                level="success",
                message=f"Connected to {data.get('name') or 'WordPress Site'}",
                details=f"Namespaces: {', '.join(namespaces)}",
            )
        )
        return ConnectionReport(connection=connection, events=events)

    if result.error_kind == "network":
        message = (
            "Connection Failed. The site could not be reached. Check the URL, or proceed if you are sure "
            "it is correct: the deployment itself connects over SFTP/FTP, not over HTTP."
        )
        details = result.error
    elif result.ok:
        message = "Connection Failed. The REST index did not return a JSON object."
        details = str(result.data)[:100]
    else:
        message = f"Connection Failed. {result.error}"
        details = f"{result.error} \nResponse: {result.text}..."

    events.append(ReportEvent(level="error", message=message, details=details))
    connection = previous.model_copy(update={"status": "error"}, deep=True)
    return ConnectionReport(connection=connection, error=message, events=events)
