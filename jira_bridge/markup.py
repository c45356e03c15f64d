"""Convert text between Jira wiki markup, HTML and plain text.

This is a best-effort converter, not a full renderer. Every public helper
returns the original input when something goes wrong; ``convert_*`` variants
return a ``Conversion`` so callers can tell a converted value from a fallback.
"""
import html
import re
from dataclasses import dataclass
from html.parser import HTMLParser
from typing import Any, Callable, Dict, List, Optional, Tuple

from .logger import get_logger

logger = get_logger("markup")


@dataclass(frozen=True)
class Conversion:
    value: Optional[str]
    converted: bool


def _attempt(func: Callable[[str], str], text: Optional[str]) -> Conversion:
    if text is None:
        return Conversion(None, True)
    try:
        return Conversion(func(text), True)
    except Exception as e:
        logger.debug(f"Markup conversion {func.__name__} failed, keeping original: {e}")
        return Conversion(text, False)


# ---------------------------------------------------------------------------
# Wiki -> HTML
# ---------------------------------------------------------------------------

HEADING_RE = re.compile(r'^\s*h([1-6])\.\s*(.*)$')
LIST_ITEM_RE = re.compile(r'^\s*([*#]+|-)\s+(.*)$')
BLOCK_MACRO_RE = re.compile(r'^\s*\{(code|noformat|quote)(?::[^}]*)?\}(.*)$')
TABLE_CELL_RE = re.compile(r'(\|\|?)([^|]*)')

# Inline markers: (wiki marker, html tag)
INLINE_MARKERS = [
    (r'\*', 'strong'),
    (r'_', 'em'),
    (r'\?\?', 'cite'),
    (r'-', 'del'),
    (r'\+', 'u'),
    (r'\^', 'sup'),
    (r'~', 'sub'),
]
_INLINE_PATTERNS = [
    (re.compile(r'(?<![\w{m}]){m}(?=\S)(.+?)(?<=\S){m}(?![\w{m}])'.format(m=marker)), tag)
    for marker, tag in INLINE_MARKERS
]
MONOSPACE_RE = re.compile(r'\{\{(.+?)\}\}')
LINK_WITH_ALIAS_RE = re.compile(r'\[([^\[\]|]+)\|([^\[\]]+)\]')
LINK_RE = re.compile(r'\[((?:https?|ftp|mailto|file):[^\[\]]+)\]')
USER_LINK_RE = re.compile(r'\[~([^\[\]]+)\]')
IMAGE_RE = re.compile(r'!([^!\s|]+)(?:\|[^!]*)?!')
COLOR_RE = re.compile(r'\{color:([#\w]+)\}(.*?)\{color\}')
PLACEHOLDER_RE = re.compile('\x00(\\d+)\x00')


def wiki_to_html(wiki_text: Optional[str]) -> Optional[str]:
    """Convert Jira wiki markup to an HTML fragment (no <html>/<body>).

    Supports:
    - h1. .. h6. headings
    - Bullet (*, -) and numbered (#) lists, nested with ** / ##
    - Tables (||header|| and |cell|)
    - {code}, {noformat} and {quote} blocks, bq. quotes
    - Horizontal rules (----)
    - Inline *bold*, _italic_, -strike-, +underline+, ^sup^, ~sub~, ??cite??,
      {{monospace}}, {color:red}..{color}, links, images and \\\\ line breaks
    """
    return convert_wiki_to_html(wiki_text).value


def convert_wiki_to_html(wiki_text: Optional[str]) -> Conversion:
    return _attempt(_render_wiki, wiki_text)


def _render_wiki(text: str) -> str:
    lines = text.replace('\r\n', '\n').replace('\r', '\n').split('\n')
    return ''.join(_render_blocks(lines))


def _render_blocks(lines: List[str]) -> List[str]:
    out: List[str] = []
    paragraph: List[str] = []
    i = 0

    def flush_paragraph():
        if paragraph:
            out.append('<p>' + '<br/>'.join(render_inline(p) for p in paragraph) + '</p>')
            paragraph.clear()

    while i < len(lines):
        line = lines[i]

        # Empty line ends the current paragraph
        if not line.strip():
            flush_paragraph()
            i += 1
            continue

        # Block macros: {code}, {noformat}, {quote}
        macro = BLOCK_MACRO_RE.match(line)
        if macro:
            flush_paragraph()
            name, rest = macro.group(1), macro.group(2)
            closing = '{' + name + '}'
            body: List[str] = []
            if closing in rest:
                body.append(rest.split(closing, 1)[0])
                i += 1
            else:
                if rest:
                    body.append(rest)
                i += 1
                while i < len(lines) and closing not in lines[i]:
                    body.append(lines[i])
                    i += 1
                if i < len(lines):
                    before = lines[i].split(closing, 1)[0]
                    if before:
                        body.append(before)
                    i += 1
            if name == 'quote':
                out.append('<blockquote>' + ''.join(_render_blocks(body)) + '</blockquote>')
            else:
                out.append('<pre><code>' + html.escape('\n'.join(body), quote=False) + '</code></pre>')
            continue

        # Heading (h1. .. h6.)
        heading = HEADING_RE.match(line)
        if heading:
            flush_paragraph()
            level = heading.group(1)
            out.append(f'<h{level}>{render_inline(heading.group(2))}</h{level}>')
            i += 1
            continue

        # Horizontal rule (----)
        if line.strip() == '----':
            flush_paragraph()
            out.append('<hr/>')
            i += 1
            continue

        # Single line quote (bq.)
        if line.lstrip().startswith('bq. '):
            flush_paragraph()
            out.append('<blockquote><p>' + render_inline(line.lstrip()[4:]) + '</p></blockquote>')
            i += 1
            continue

        # Lists
        if LIST_ITEM_RE.match(line):
            flush_paragraph()
            items: List[Tuple[str, str]] = []
            while i < len(lines):
                item = LIST_ITEM_RE.match(lines[i])
                if not item:
                    break
                items.append((item.group(1), item.group(2)))
                i += 1
            out.append(_render_list(items))
            continue

        # Tables
        if line.lstrip().startswith('|'):
            flush_paragraph()
            rows: List[str] = []
            while i < len(lines) and lines[i].lstrip().startswith('|'):
                rows.append(lines[i].strip())
                i += 1
            out.append(_render_table(rows))
            continue

        paragraph.append(line)
        i += 1

    flush_paragraph()
    return out


def _render_list(items: List[Tuple[str, str]]) -> str:
    out: List[str] = []
    stack: List[str] = []

    for markers, content in items:
        tags = ['ol' if m == '#' else 'ul' for m in markers]
        depth = len(tags)

        common = 0
        while common < min(len(stack), depth) and stack[common] == tags[common]:
            common += 1
        while len(stack) > common:
            out.append('</li>')
            out.append(f'</{stack.pop()}>')

        if stack and len(stack) == depth:
            out.append('</li>')
        while len(stack) < depth:
            tag = tags[len(stack)]
            out.append(f'<{tag}>')
            stack.append(tag)
            if len(stack) < depth:
                out.append('<li>')
        out.append('<li>' + render_inline(content))

    while stack:
        out.append('</li>')
        out.append(f'</{stack.pop()}>')
    return ''.join(out)


def _render_table(rows: List[str]) -> str:
    out = ['<table><tbody>']
    for row in rows:
        cells = TABLE_CELL_RE.findall(row)
        # A trailing separator produces an empty last cell
        if cells and not cells[-1][1].strip():
            cells = cells[:-1]
        out.append('<tr>')
        for separator, content in cells:
            tag = 'th' if separator == '||' else 'td'
            out.append(f'<{tag}>{render_inline(content.strip())}</{tag}>')
        out.append('</tr>')
    out.append('</tbody></table>')
    return ''.join(out)


def render_inline(text: str) -> str:
    """Render inline wiki formatting for a single line of text."""
    protected: List[str] = []

    def protect(fragment: str) -> str:
        protected.append(fragment)
        return f'\x00{len(protected) - 1}\x00'

    text = html.escape(text, quote=False)

    # Code spans and links first so their content is left alone
    text = MONOSPACE_RE.sub(lambda m: protect(f'<code>{m.group(1)}</code>'), text)
    text = LINK_WITH_ALIAS_RE.sub(
        lambda m: protect(f'<a href="{_attr(m.group(2))}">{m.group(1)}</a>'), text)
    text = LINK_RE.sub(lambda m: protect(f'<a href="{_attr(m.group(1))}">{m.group(1)}</a>'), text)
    text = USER_LINK_RE.sub(lambda m: protect(f'<span class="user">{m.group(1)}</span>'), text)
    text = IMAGE_RE.sub(lambda m: protect(f'<img src="{_attr(m.group(1))}"/>'), text)

    text = COLOR_RE.sub(r'<span style="color: \1">\2</span>', text)
    for pattern, tag in _INLINE_PATTERNS:
        text = pattern.sub(rf'<{tag}>\1</{tag}>', text)

    text = text.replace('\\\\', '<br/>')

    return PLACEHOLDER_RE.sub(lambda m: protected[int(m.group(1))], text)


def _attr(value: str) -> str:
    return value.replace('"', '&quot;')


# ---------------------------------------------------------------------------
# HTML -> text / wiki
# ---------------------------------------------------------------------------

BLOCK_TAGS = {'p', 'div', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'ul', 'ol', 'table',
              'blockquote', 'pre', 'hr', 'section', 'article', 'header', 'footer'}
SKIP_TAGS = {'script', 'style', 'head', 'title'}


class _HtmlWalker(HTMLParser):
    """Collects output chunks while walking an HTML fragment."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.out: List[str] = []
        self.skip_depth = 0
        self.pre_depth = 0
        self.lists: List[Dict[str, int]] = []

    def text(self) -> str:
        return ''.join(self.out)

    # Output is only ever inspected or trimmed at its end; chunks are never empty
    def emit(self, chunk: str) -> None:
        if chunk:
            self.out.append(chunk)

    def ends_with_newline(self) -> bool:
        return not self.out or self.out[-1].endswith('\n')

    def ends_with_space(self) -> bool:
        return bool(self.out) and self.out[-1].endswith(' ')

    def rstrip_spaces(self) -> None:
        while self.out:
            stripped = self.out[-1].rstrip(' ')
            if stripped:
                self.out[-1] = stripped
                return
            self.out.pop()

    def trailing_newlines(self, limit: int) -> int:
        count = 0
        for chunk in reversed(self.out):
            stripped = chunk.rstrip('\n')
            count += len(chunk) - len(stripped)
            if stripped or count >= limit:
                break
        return count

    def newline(self, count: int = 1) -> None:
        if not self.out:
            return
        trailing = self.trailing_newlines(count)
        if trailing < count:
            # Strip trailing spaces before breaking the line
            if not trailing:
                self.rstrip_spaces()
            self.out.append('\n' * (count - trailing))

    def line_break(self) -> None:
        if not self.out:
            return
        self.rstrip_spaces()
        self.out.append('\n')

    def handle_data(self, data: str) -> None:
        if self.skip_depth:
            return
        if self.pre_depth:
            self.emit(data)
            return
        data = re.sub(r'\s+', ' ', data)
        if self.ends_with_newline() or self.ends_with_space():
            data = data.lstrip(' ')
        self.emit(data)


class _TextRenderer(_HtmlWalker):
    def __init__(self):
        super().__init__()
        self.link_href: Optional[str] = None
        self.link_start = 0

    def handle_starttag(self, tag, attrs):
        if tag in SKIP_TAGS:
            self.skip_depth += 1
            return
        if tag == 'br':
            self.line_break()
            return
        if tag in ('ul', 'ol'):
            self.newline(1 if self.lists else 2)
            self.lists.append({'ordered': int(tag == 'ol'), 'count': 0})
            return
        if tag == 'li':
            self.newline()
            indent = '  ' * max(len(self.lists) - 1, 0)
            if self.lists and self.lists[-1]['ordered']:
                self.lists[-1]['count'] += 1
                self.emit(f"{indent}{self.lists[-1]['count']}. ")
            else:
                self.emit(f'{indent}* ')
            return
        if tag == 'tr':
            self.newline()
            return
        if tag in ('td', 'th'):
            if not self.ends_with_newline():
                self.emit('\t')
            return
        if tag == 'pre':
            self.newline(2)
            self.pre_depth += 1
            return
        if tag == 'a':
            self.link_href = dict(attrs).get('href')
            self.link_start = len(self.out)
            return
        if tag in BLOCK_TAGS:
            self.newline(2)

    def handle_startendtag(self, tag, attrs):
        if tag == 'br':
            self.line_break()
        elif tag == 'hr':
            self.newline(2)
        else:
            self.handle_starttag(tag, attrs)

    def handle_endtag(self, tag):
        if tag in SKIP_TAGS:
            self.skip_depth = max(self.skip_depth - 1, 0)
            return
        if tag in ('ul', 'ol'):
            if self.lists:
                self.lists.pop()
            self.newline(1 if self.lists else 2)
            return
        if tag == 'pre':
            self.pre_depth = max(self.pre_depth - 1, 0)
            self.newline(2)
            return
        if tag == 'a':
            label = ''.join(self.out[self.link_start:]).strip()
            if self.link_href and self.link_href != label and not self.link_href.startswith('#'):
                self.emit(f' <{self.link_href}>')
            self.link_href = None
            return
        if tag in BLOCK_TAGS:
            self.newline(2)


def html_to_text(html_text: Optional[str]) -> Optional[str]:
    """Render an HTML fragment as plain text (lists become "* item" lines)."""
    return convert_html_to_text(html_text).value


def convert_html_to_text(html_text: Optional[str]) -> Conversion:
    return _attempt(_render_text, html_text)


def _render_text(html_text: str) -> str:
    renderer = _TextRenderer()
    renderer.feed(html_text)
    renderer.close()
    return _tidy(renderer.text())


WIKI_INLINE_TAGS = {
    'strong': '*', 'b': '*',
    'em': '_', 'i': '_',
    'u': '+', 'ins': '+',
    'del': '-', 's': '-', 'strike': '-',
    'sup': '^', 'sub': '~',
    'cite': '??',
}


class _WikiRenderer(_HtmlWalker):
    def __init__(self):
        super().__init__()
        self.links: List[Tuple[int, Optional[str]]] = []
        self.row_header = False

    def handle_starttag(self, tag, attrs):
        if tag in SKIP_TAGS:
            self.skip_depth += 1
            return
        if tag in WIKI_INLINE_TAGS:
            self.emit(WIKI_INLINE_TAGS[tag])
            return
        if tag in ('code', 'tt') and not self.pre_depth:
            self.emit('{{')
            return
        if tag == 'br':
            self.line_break()
            return
        if tag in ('h1', 'h2', 'h3', 'h4', 'h5', 'h6'):
            self.newline(2)
            self.emit(f'{tag}. ')
            return
        if tag in ('ul', 'ol'):
            self.newline(1 if self.lists else 2)
            self.lists.append({'ordered': int(tag == 'ol'), 'count': 0})
            return
        if tag == 'li':
            self.newline()
            markers = ''.join('#' if level['ordered'] else '*' for level in self.lists) or '*'
            self.emit(markers + ' ')
            return
        if tag == 'tr':
            self.newline()
            self.row_header = False
            return
        if tag in ('td', 'th'):
            separator = '||' if tag == 'th' else '|'
            self.row_header = tag == 'th'
            self.emit(separator)
            return
        if tag == 'pre':
            self.newline(2)
            self.emit('{noformat}\n')
            self.pre_depth += 1
            return
        if tag == 'blockquote':
            self.newline(2)
            self.emit('{quote}\n')
            return
        if tag == 'a':
            self.links.append((len(self.out), dict(attrs).get('href')))
            return
        if tag == 'img':
            src = dict(attrs).get('src')
            if src:
                self.emit(f'!{src}!')
            return
        if tag == 'hr':
            self.newline(2)
            self.emit('----')
            self.newline(2)
            return
        if tag in BLOCK_TAGS:
            self.newline(2)

    def handle_startendtag(self, tag, attrs):
        self.handle_starttag(tag, attrs)

    def handle_endtag(self, tag):
        if tag in SKIP_TAGS:
            self.skip_depth = max(self.skip_depth - 1, 0)
            return
        if tag in WIKI_INLINE_TAGS:
            self._close_marker(WIKI_INLINE_TAGS[tag])
            return
        if tag in ('code', 'tt') and not self.pre_depth:
            self._close_marker('}}')
            return
        if tag in ('ul', 'ol'):
            if self.lists:
                self.lists.pop()
            self.newline(1 if self.lists else 2)
            return
        if tag == 'tr':
            self.emit('||' if self.row_header else '|')
            return
        if tag == 'pre':
            self.pre_depth = max(self.pre_depth - 1, 0)
            if not self.ends_with_newline():
                self.emit('\n')
            self.emit('{noformat}')
            self.newline(2)
            return
        if tag == 'blockquote':
            self.newline()
            self.emit('{quote}')
            self.newline(2)
            return
        if tag == 'a':
            if not self.links:
                return
            start, href = self.links.pop()
            label = ''.join(self.out[start:]).strip()
            if href:
                self.out[start:] = [f'[{label}|{href}]' if label else f'[{href}]']
            return
        if tag in BLOCK_TAGS:
            self.newline(2)

    def _close_marker(self, marker: str) -> None:
        # Jira needs the closing marker right after a non-space character
        if self.ends_with_space():
            self.rstrip_spaces()
            self.out.extend([marker, ' '])
        else:
            self.emit(marker)


def html_to_wiki(html_text: Optional[str]) -> Optional[str]:
    """Convert an HTML fragment into Jira wiki markup."""
    return convert_html_to_wiki(html_text).value


def convert_html_to_wiki(html_text: Optional[str]) -> Conversion:
    return _attempt(_render_html_as_wiki, html_text)


def _render_html_as_wiki(html_text: str) -> str:
    renderer = _WikiRenderer()
    renderer.feed(html_text)
    renderer.close()
    return _tidy(renderer.text())


def _tidy(text: str) -> str:
    lines = [line.rstrip() for line in text.split('\n')]
    text = '\n'.join(lines)
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.strip()


# ---------------------------------------------------------------------------
# Combined helpers
# ---------------------------------------------------------------------------

def wiki_to_text(wiki_text: Optional[str]) -> Optional[str]:
    """Wiki markup rendered to HTML and then flattened to plain text."""
    return convert_wiki_to_text(wiki_text).value


def convert_wiki_to_text(wiki_text: Optional[str]) -> Conversion:
    as_html = convert_wiki_to_html(wiki_text)
    if not as_html.converted:
        return as_html
    as_text = convert_html_to_text(as_html.value)
    if not as_text.converted:
        return Conversion(wiki_text, False)
    return Conversion(as_text.value.strip() if as_text.value is not None else None, True)


def text_to_html(text: Optional[str]) -> Optional[str]:
    """Escape plain text and keep its line breaks."""
    return convert_text_to_html(text).value


def convert_text_to_html(text: Optional[str]) -> Conversion:
    return _attempt(lambda value: html.escape(value, quote=False).replace('\n', '<br>'), text)


def text_to_wiki(text: Optional[str]) -> Optional[str]:
    """Plain text is valid wiki markup as it is."""
    return text


# Outbound formats accepted for descriptions and comment bodies
TO_WIKI = {
    'html': html_to_wiki,
    'wiki': lambda value: value,
    'text': text_to_wiki,
}


def to_wiki(value: Optional[str], fmt: Any) -> Optional[str]:
    """Convert an outbound body in ``fmt`` (html, wiki, text) into wiki markup.

    Unknown or missing formats are treated as plain text.
    """
    if not isinstance(fmt, str):
        return text_to_wiki(value)
    converter = TO_WIKI.get(fmt.strip().lower(), text_to_wiki)
    return converter(value)
