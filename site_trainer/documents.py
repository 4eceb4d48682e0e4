import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

UPLOADED_DOCUMENTS_HEADER = "\n\n--- UPLOADED DOCUMENTS ---"


@dataclass
class Document:
    """An uploaded document whose text was already extracted by the caller."""
    name: str
    content: str
    type: str = "text/plain"

    @classmethod
    def from_dict(cls, data: dict) -> "Document":
        return cls(
            name=str(data.get('name') or 'untitled'),
            content=str(data.get('content') or ''),
            type=str(data.get('type') or 'text/plain'),
        )


def process_documents(documents) -> str:
    """Concatenate uploaded documents into the crawl text format.

    Accepts ``Document`` instances or ``{name, content, type}`` dicts. Blank
    documents are skipped; an empty string is returned when nothing is left.
    """
    blocks = []
    for doc in documents or []:
        if isinstance(doc, dict):
            doc = Document.from_dict(doc)
        if not doc.content.strip():
            logger.warning(f"Skipping document '{doc.name}' ({doc.type}): no text content")
            continue
        blocks.append(f"\n\n--- DOCUMENT {len(blocks) + 1}: {doc.name} ---\n{doc.content.strip()}")
    if not blocks:
        return ""
    logger.info(f"Ingested {len(blocks)} uploaded documents")
    return UPLOADED_DOCUMENTS_HEADER + "".join(blocks)
