"""Document links for the monthly-sheet PDF column."""

from urllib.parse import quote

from poa_sync.models import ActivityRecord


def build_document_link(record: ActivityRecord, base_url: str) -> str:
    """``<base_url>?html=<url-encoded raw email HTML>``"""
    return f"{base_url}?html={quote(record.raw_html or '', safe='')}"


class LinkBuilder:
    """Callable bound to one base URL; the pipeline's default link builder."""

    def __init__(self, base_url: str):
        self.base_url = base_url

    def __call__(self, record: ActivityRecord) -> str:
        return build_document_link(record, self.base_url)
