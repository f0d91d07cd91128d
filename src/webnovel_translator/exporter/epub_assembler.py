"""Direct EPUB 2 assembly.

The archive is written straight into a zip file:
1. ``mimetype`` first and uncompressed
2. META-INF/container.xml
3. OEBPS with the OPF manifest, NCX table of contents, stylesheet,
   title page, optional glossary section and one XHTML file per chapter
"""

import uuid
import zipfile
from pathlib import Path
from typing import Optional, Sequence
from xml.sax.saxutils import escape

import structlog
from pydantic import BaseModel

from webnovel_translator.config import ExportConfig, get_config

logger = structlog.get_logger()


CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

STYLES_CSS = """
body {
    font-family: Georgia, serif;
    line-height: 1.6;
    margin: 1em;
}

h2.chapter-title {
    font-size: 1.4em;
    text-align: center;
    margin: 2em 0 1em 0;
}

p {
    margin: 0 0 1em 0;
}

.scene-break {
    text-align: center;
    margin: 1.5em 0;
    font-weight: bold;
    font-size: 1.2em;
}

.title-page {
    text-align: center;
    margin-top: 30%;
}

.title-page h1 {
    font-size: 2em;
    margin-bottom: 0.5em;
}

.title-page .author {
    font-size: 1.2em;
    font-style: italic;
}

.glossary-title {
    text-align: center;
    border-bottom: 2px solid #ddd;
    padding-bottom: 0.5em;
}

.glossary-summary {
    text-align: center;
    color: #666;
    font-size: 0.9em;
    margin-bottom: 2em;
}

.character-entry {
    margin-bottom: 1.5em;
    padding: 1em;
    border-left: 3px solid #ddd;
}

.character-entry h4 {
    margin: 0 0 0.5em 0;
}

.source-name {
    font-weight: normal;
    color: #666;
    font-size: 0.9em;
}

.character-details {
    font-size: 0.9em;
    color: #555;
}
"""

GLOSSARY_TITLE = "Character Glossary"


class BookMetadata(BaseModel):
    title: str
    author: str = "Web Novel Translator"
    publisher: str = "Web Novel Translator App"
    language: str = "en"


class BookSection(BaseModel):
    """One entry of the book: a title and its XHTML body fragment."""

    title: str
    body_html: str


def _xhtml_page(title: str, body: str, language: str, stylesheet: str = "../styles.css") -> str:
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xml:lang="{language}">
<head>
    <meta charset="UTF-8"/>
    <title>{escape(title)}</title>
    <link rel="stylesheet" type="text/css" href="{stylesheet}"/>
</head>
<body>
{body}
</body>
</html>"""


class EpubAssembler:
    """Write an EPUB from ordered sections."""

    def __init__(self, config: Optional[ExportConfig] = None):
        """Initialize assembler.

        Args:
            config: Export configuration, uses global config if None
        """
        self.config = config or get_config().export

    def metadata_for(self, title: str) -> BookMetadata:
        """Metadata with the configured author, publisher and language."""
        return BookMetadata(
            title=title,
            author=self.config.author,
            publisher=self.config.publisher,
            language=self.config.language,
        )

    def assemble(
        self,
        sections: Sequence[BookSection],
        output_path: Path,
        metadata: BookMetadata,
        glossary_html: Optional[str] = None,
    ) -> Path:
        """Write the EPUB file.

        Args:
            sections: Chapters in reading order
            output_path: Destination .epub path
            metadata: Book title, author, publisher
            glossary_html: Optional glossary section, placed before the chapters

        Returns:
            Path to generated EPUB file
        """
        if not sections:
            raise ValueError("No chapters to export")

        entries: list[tuple[str, BookSection]] = []
        if glossary_html:
            entries.append(("glossary", BookSection(title=GLOSSARY_TITLE, body_html=glossary_html)))
        for index, section in enumerate(sections, 1):
            entries.append((f"chapter_{index:04d}", section))

        identifier = f"urn:uuid:{uuid.uuid5(uuid.NAMESPACE_URL, metadata.title)}"
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info(
            "assembling_epub",
            chapters=len(sections),
            glossary=bool(glossary_html),
            path=str(output_path),
        )

        with zipfile.ZipFile(output_path, "w", zipfile.ZIP_DEFLATED) as zf:
            # mimetype MUST be first and uncompressed
            zf.writestr("mimetype", "application/epub+zip", compress_type=zipfile.ZIP_STORED)
            zf.writestr("META-INF/container.xml", CONTAINER_XML)
            zf.writestr("OEBPS/styles.css", STYLES_CSS)
            zf.writestr("OEBPS/titlepage.xhtml", self._title_page(metadata))
            for name, section in entries:
                zf.writestr(f"OEBPS/text/{name}.xhtml", self._section_page(section, metadata))
            zf.writestr("OEBPS/content.opf", self._manifest(entries, metadata, identifier))
            zf.writestr("OEBPS/toc.ncx", self._toc(entries, metadata, identifier))

        logger.info("epub_created", path=str(output_path))
        return output_path

    def _section_page(self, section: BookSection, metadata: BookMetadata) -> str:
        body = f'<h2 class="chapter-title">{escape(section.title)}</h2>\n{section.body_html}'
        return _xhtml_page(section.title, body, metadata.language)

    def _title_page(self, metadata: BookMetadata) -> str:
        body = f"""<div class="title-page">
    <h1>{escape(metadata.title)}</h1>
    <p class="author">{escape(metadata.author)}</p>
</div>"""
        return _xhtml_page(metadata.title, body, metadata.language, stylesheet="styles.css")

    def _manifest(
        self,
        entries: list[tuple[str, BookSection]],
        metadata: BookMetadata,
        identifier: str,
    ) -> str:
        manifest_items = [
            '    <item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>',
            '    <item id="styles" href="styles.css" media-type="text/css"/>',
            '    <item id="titlepage" href="titlepage.xhtml" media-type="application/xhtml+xml"/>',
        ]
        spine_items = ['    <itemref idref="titlepage"/>']
        for name, _ in entries:
            manifest_items.append(
                f'    <item id="{name}" href="text/{name}.xhtml" media-type="application/xhtml+xml"/>'
            )
            spine_items.append(f'    <itemref idref="{name}"/>')

        return f"""<?xml version="1.0" encoding="UTF-8"?>
<package version="2.0" xmlns="http://www.idpf.org/2007/opf" unique-identifier="BookId">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/" xmlns:opf="http://www.idpf.org/2007/opf">
    <dc:title>{escape(metadata.title)}</dc:title>
    <dc:creator opf:role="aut">{escape(metadata.author)}</dc:creator>
    <dc:publisher>{escape(metadata.publisher)}</dc:publisher>
    <dc:language>{metadata.language}</dc:language>
    <dc:identifier id="BookId">{identifier}</dc:identifier>
  </metadata>
  <manifest>
{chr(10).join(manifest_items)}
  </manifest>
  <spine toc="ncx">
{chr(10).join(spine_items)}
  </spine>
</package>"""

    def _toc(
        self,
        entries: list[tuple[str, BookSection]],
        metadata: BookMetadata,
        identifier: str,
    ) -> str:
        nav_points = []
        for order, (name, section) in enumerate(entries, 1):
            nav_points.append(f"""    <navPoint id="navpoint{order}" playOrder="{order}">
      <navLabel><text>{escape(section.title)}</text></navLabel>
      <content src="text/{name}.xhtml"/>
    </navPoint>""")

        return f"""<?xml version="1.0" encoding="UTF-8"?>
<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">
  <head>
    <meta name="dtb:uid" content="{identifier}"/>
    <meta name="dtb:depth" content="1"/>
    <meta name="dtb:totalPageCount" content="0"/>
    <meta name="dtb:maxPageNumber" content="0"/>
  </head>
  <docTitle><text>{escape(metadata.title)}</text></docTitle>
  <navMap>
{chr(10).join(nav_points)}
  </navMap>
</ncx>"""
