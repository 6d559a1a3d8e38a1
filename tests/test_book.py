import os
import tempfile
import unittest
from pathlib import Path

from ebooklib import epub

from epubsnap.book import Book, EpubBook, decode_epub
from epubsnap.errors import (
    ArchiveInvalid,
    BookError,
    ContainerMissing,
    ResourceNotFound,
    UnsupportedVersion,
)

from epub_samples import (
    THREE_CHAPTER_NAV,
    build_epub,
    chapter_xhtml,
    html_nav_epub,
    legacy_epub,
    nav_point,
    package_xml,
)


def _ebooklib_epub(tmp: str) -> bytes:
    output_path = Path(tmp) / "book.epub"
    book = epub.EpubBook()
    book.set_identifier("urn:uuid:epubsnap-smoke")
    book.set_title("书")
    book.set_language("zh-CN")

    chapters = []
    for index, title in enumerate(("第一章", "第二章"), start=1):
        doc = epub.EpubHtml(title=title, file_name=f"Text/ch{index}.xhtml", lang="zh-CN")
        doc.content = (
            "<html xmlns=\"http://www.w3.org/1999/xhtml\" xml:lang=\"zh-CN\">"
            f"<head><meta charset=\"utf-8\" /><title>{title}</title></head>"
            f"<body><p>正文{index}</p></body></html>"
        )
        book.add_item(doc)
        chapters.append(doc)
    book.toc = chapters
    book.spine = ["nav", *chapters]
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())

    epub.write_epub(str(output_path), book, {"epub3_pages": False})
    return output_path.read_bytes()


class DecodeTests(unittest.TestCase):
    def test_html_nav_book_end_to_end(self) -> None:
        book = decode_epub(html_nav_epub(THREE_CHAPTER_NAV))
        self.assertIsInstance(book, EpubBook)
        self.assertEqual(book.root_file, "OEBPS/content.opf")
        metadata = book.get_metadata()
        self.assertEqual(metadata.version, "3.0")
        self.assertEqual([str(value) for value in metadata.title], ["Modern Book"])
        self.assertEqual([page.label for page in metadata.navigation.toc], ["Chapter 1", "Chapter 2", "Chapter 3"])
        self.assertEqual([page.playorder for page in metadata.navigation.toc], [1, 2, 3])
        self.assertEqual(metadata.page_count, 3)

        cover = book.get_cover_image()
        self.assertIsNotNone(cover)
        self.assertEqual(cover.path, "OEBPS/Images/cover.jpg")

        page, text = book.get_page(metadata, 2)
        self.assertEqual(page.src, "OEBPS/Text/chap2.xhtml")
        self.assertIn("<h1>Chapter 2</h1>", text)

    def test_get_page_without_metadata_uses_decoded(self) -> None:
        book = decode_epub(html_nav_epub(THREE_CHAPTER_NAV))
        page, _ = book.get_page(None, 1)
        self.assertEqual(page.label, "Chapter 1")

    def test_get_page_unknown_playorder(self) -> None:
        book = decode_epub(html_nav_epub(THREE_CHAPTER_NAV))
        with self.assertRaises(ResourceNotFound) as ctx:
            book.get_page(None, 9)
        self.assertEqual(ctx.exception.code, "epub_page_not_found")

    def test_get_page_follows_reading_order_for_shared_files(self) -> None:
        points = (
            nav_point("p1", 1, "Intro", "Text/chap1.xhtml")
            + nav_point("p2", 2, "Intro b", "Text/chap1.xhtml#a")
            + nav_point("p3", 3, "Next", "Text/chap2.xhtml")
        )
        book = decode_epub(legacy_epub(points))
        page, text = book.get_page(None, 2)
        self.assertEqual(page.label, "Next")
        self.assertIn("Body 2", text)

    def test_missing_container(self) -> None:
        data = build_epub({"OEBPS/content.opf": package_xml()}, with_container=False)
        with self.assertRaises(ContainerMissing) as ctx:
            decode_epub(data)
        self.assertEqual(ctx.exception.code, "epub_missing_container_file")

    def test_unsupported_version(self) -> None:
        data = build_epub(
            {
                "OEBPS/content.opf": package_xml(
                    version="1.0",
                    manifest="<item id=\"c1\" href=\"c1.xhtml\" media-type=\"application/xhtml+xml\"/>",
                    spine="<itemref idref=\"c1\"/>",
                ),
                "OEBPS/c1.xhtml": chapter_xhtml("One"),
            }
        )
        with self.assertRaises(UnsupportedVersion) as ctx:
            decode_epub(data)
        self.assertEqual(ctx.exception.code, "epub_invalid_version")

    def test_not_a_zip(self) -> None:
        with self.assertRaises(ArchiveInvalid) as ctx:
            decode_epub(b"plain text, not an archive")
        self.assertIsInstance(ctx.exception, BookError)
        self.assertEqual(ctx.exception.code, "epub_invalid_archive")

    def test_archive_size_limit(self) -> None:
        previous = os.environ.get("EPUBSNAP_MAX_ARCHIVE_BYTES")
        try:
            os.environ["EPUBSNAP_MAX_ARCHIVE_BYTES"] = "64"
            with self.assertRaises(ArchiveInvalid):
                decode_epub(html_nav_epub(THREE_CHAPTER_NAV))
            os.environ["EPUBSNAP_MAX_ARCHIVE_BYTES"] = "0"
            self.assertEqual(decode_epub(html_nav_epub(THREE_CHAPTER_NAV)).get_metadata().page_count, 3)
        finally:
            if previous is None:
                os.environ.pop("EPUBSNAP_MAX_ARCHIVE_BYTES", None)
            else:
                os.environ["EPUBSNAP_MAX_ARCHIVE_BYTES"] = previous

    def test_logs_summary(self) -> None:
        with self.assertLogs("epubsnap.book", "INFO") as logs:
            decode_epub(html_nav_epub(THREE_CHAPTER_NAV))
        self.assertIn("3 pages", logs.output[0])


class BookIdentityTests(unittest.TestCase):
    def test_equal_by_content_hash(self) -> None:
        data = html_nav_epub(THREE_CHAPTER_NAV)
        first = Book.epub(data)
        second = Book.epub(data)
        other = Book.epub(legacy_epub(nav_point("p1", 1, "One", "Text/chap1.xhtml")))
        self.assertIsNot(first, second)
        self.assertEqual(first, second)
        self.assertEqual(len({first, second, other}), 2)
        self.assertNotEqual(first, other)
        self.assertEqual(len(first.hash), 64)

    def test_decoded_metadata_cannot_be_altered(self) -> None:
        book = Book.epub(html_nav_epub(THREE_CHAPTER_NAV))
        metadata = book.get_metadata()
        cover_item = metadata.manifest.get("cover-img")
        with self.assertRaises(TypeError):
            cover_item.meta["properties"] = "svg"  # type: ignore[index]
        with self.assertRaises(TypeError):
            metadata.navigation.toc[0].meta["class"] = "x"  # type: ignore[index]
        self.assertIsNotNone(book.get_cover_image())
        self.assertEqual(hash(metadata), hash(Book.epub(html_nav_epub(THREE_CHAPTER_NAV)).get_metadata()))

    def test_compares_unequal_to_other_types(self) -> None:
        book = Book.epub(html_nav_epub(THREE_CHAPTER_NAV))
        self.assertNotEqual(book, book.hash)


class EbooklibSmokeTests(unittest.TestCase):
    def test_decodes_ebooklib_output(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            data = _ebooklib_epub(tmp)
        book = decode_epub(data)
        metadata = book.get_metadata()
        self.assertTrue(metadata.version.startswith("3."))
        self.assertEqual([str(value) for value in metadata.title], ["书"])
        self.assertEqual([page.label for page in metadata.navigation.toc], ["第一章", "第二章"])
        self.assertEqual(sorted(entry.page.playorder for entry in metadata.navigation.reading_order()), [1, 2])

        page, text = book.get_page(metadata, 1)
        self.assertTrue(page.src.endswith("Text/ch1.xhtml"))
        self.assertIn("正文1", text)


if __name__ == "__main__":
    unittest.main()
