import re
from html import unescape

from bs4 import BeautifulSoup, NavigableString

_HIDDEN_TAGS = ["script", "style", "head", "noscript", "svg", "iframe"]
_BLOCK_TAGS = ["p", "div", "section", "article", "tr", "pre", "h1", "h2", "h3", "h4", "h5", "h6", "blockquote"]


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def page_title(soup: BeautifulSoup) -> str:
    tag = soup.find("title")
    return tag.get_text(strip=True) if tag else ""


def html_to_text(soup: BeautifulSoup) -> str:
    """Readable plain text for a parsed page; link targets are kept inline.

    The soup is modified in place.
    """
    for tag in soup.find_all(_HIDDEN_TAGS):
        tag.decompose()

    for br in soup.find_all("br"):
        br.replace_with("\n")

    for tag in soup.find_all(_BLOCK_TAGS):
        tag.insert(0, NavigableString("\n"))
        tag.append(NavigableString("\n"))

    for a in soup.find_all("a", href=True):
        href = a["href"]
        label = a.get_text(strip=True)
        if href.startswith(("#", "javascript:")) or href == label:
            continue
        a.replace_with(f"[{label}]({href})" if label else href)

    for li in soup.find_all("li"):
        li.insert(0, NavigableString("\n- "))

    for cell in soup.find_all(["td", "th"]):
        cell.append(NavigableString(" | "))

    root = soup.find("body") or soup
    return _normalize_whitespace(unescape(root.get_text()))


def _normalize_whitespace(text: str) -> str:
    text = re.sub(r"[ \t ]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()
