"""Renders repository digests into an HTML notification."""
import json
from html import escape
from typing import List, Optional, Sequence
from issue_label_watcher.application.notification_state import RepositoryDigest
from issue_label_watcher.domain.models import Notification

PROJECT_URL = "https://github.com/rseanhall/issue-label-watcher"


def _view_action(url: str) -> str:
    # https://developers.google.com/gmail/markup/reference/go-to-action#json-ld
    markup = {
        "@context": "http://schema.org",
        "@type": "EmailMessage",
        "potentialAction": {
            "@type": "ViewAction",
            "target": url,
            "url": url,
            "name": "View Issue",
        },
        "description": "View the issue or PR on GitHub",
        "publisher": {
            "@type": "Organization",
            "url": PROJECT_URL,
            "name": "IssueLabelWatcher",
        },
    }
    return f'<script type="application/ld+json">{json.dumps(markup)}</script>'


def _repository_fragment(digest: RepositoryDigest) -> str:
    lines = ["<p>", f"<h3>{escape(digest.repository.full_name)}</h3>", "<table>"]
    for issue in digest.issues:
        labels = ", ".join(escape(label) for label in issue.labels)
        viewed = " <i>(viewed)</i>" if issue.already_viewed else ""
        lines.append(
            f'<tr><td><a href="{escape(issue.url)}">{escape(issue.number)}</a></td>'
            f"<td>{issue.kind.value}</td><td>{escape(issue.title)}{viewed}</td></tr>"
        )
        lines.append(f"<tr><td></td><td>{escape(issue.status)}</td><td><i>{labels}</i></td></tr>")
    lines.append("</table>")
    return "\n".join(lines) + "\n"


def render_notification(digests: Sequence[RepositoryDigest], version: str) -> Optional[Notification]:
    """Build the notification for a run, or None when there is nothing new."""
    total = sum(len(digest.new_issues) for digest in digests)
    if total == 0:
        return None

    urls: List[str] = [issue.url for digest in digests for issue in digest.issues]
    parts = ["<html><body>\n"]
    if len(urls) == 1:
        parts.append(_view_action(urls[0]) + "\n")
    parts.extend(_repository_fragment(digest) for digest in digests)
    parts.append(f"<p><h6>IssueLabelWatcher v{escape(version)}</h6>\n")
    parts.append("</body></html>\n")

    subject = f"IssueLabelWatcher - {total} Issue{'s' if total > 1 else ''}"
    return Notification(subject=subject, html_body="".join(parts), issue_count=total)
