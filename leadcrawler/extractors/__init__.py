from .base import Extractor, LeadSource
from .website import InvestigatingExtractor, WebsiteContactExtractor, WebsiteListSource, read_url_file

__all__ = [
    "Extractor",
    "LeadSource",
    "InvestigatingExtractor",
    "WebsiteContactExtractor",
    "WebsiteListSource",
    "read_url_file",
]
