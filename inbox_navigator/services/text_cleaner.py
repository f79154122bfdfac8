"""
Text Cleaning Module for the ingestion pipeline.

Handles:
1. HTML → Plain Text conversion
2. Noise removal (signatures, disclaimers, reply history)
3. Token safety (trimming to max chars before LLM prompts)
4. Section extraction (dates, times, course codes)
"""

import re
from bs4 import BeautifulSoup
from typing import Tuple, List

# Maximum characters sent to the LLM (1 token ≈ 4 chars)
MAX_CHARS = 4000  # ~1000 tokens

# Snippet length stored next to embeddings and alerts
SNIPPET_CHARS = 200

# Keywords to preserve when trimming
PRESERVE_KEYWORDS = [
    'due', 'deadline', 'submit', 'submission', 'assignment', 'homework',
    'exam', 'midterm', 'final', 'quiz', 'project', 'cancel', 'reschedule',
    'room', 'urgent', 'lecture', 'class', 'date', 'time'
]

HTML_HINT = re.compile(r'<\s*(html|body|div|p|br|table|span|a)\b', re.IGNORECASE)

# Patterns for noise removal
SIGNATURE_PATTERNS = [
    r'thanks\s*(&|and)?\s*regards?.*$',
    r'best\s*regards?.*$',
    r'warm\s*regards?.*$',
    r'kind\s*regards?.*$',
    r'regards,?\s*$',
    r'sincerely.*$',
]

DISCLAIMER_PATTERNS = [
    r'this\s*(e-?mail|message)\s*(is\s*)?(intended|confidential).*',
    r'disclaimer.*$',
    r'if\s*you\s*are\s*not\s*the\s*intended\s*recipient.*',
]

REPLY_PATTERNS = [
    r'^on\s+.+wrote:.*$',
    r'^from:\s+.+$',
    r'^sent:\s+.+$',
    r'^>+\s*.*$',  # Quoted text
    r'^-{3,}.*original\s*message.*-{3,}$',
]

NOISE_PATTERNS = [
    r'\[image:.*?\]',
    r'\[cid:.*?\]',
    r'sent\s*from\s*(my\s*)?(iphone|ipad|android|mobile).*$',
    r'get\s*outlook\s*for.*$',
]

DATE_PATTERNS = [
    r'\b\d{4}-\d{2}-\d{2}\b',
    r'\b\d{1,2}/\d{1,2}/\d{2,4}\b',
    r'\b(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\.?\s+\d{1,2}(?:st|nd|rd|th)?\b',
    r'\b(?:mon|tues|wednes|thurs|fri|satur|sun)day\b',
]

TIME_PATTERN = r'\b\d{1,2}(?::\d{2})?\s*(?:am|pm)\b'

COURSE_CODE_PATTERN = re.compile(r'\b[A-Z]{2,4}[-\s]?\d{3,4}\b')


def looks_like_html(raw: str) -> bool:
    """Cheap check for HTML markup in a message body."""
    return bool(raw) and bool(HTML_HINT.search(raw))


def html_to_text(raw_html: str) -> str:
    """
    Convert HTML email content to clean plain text.

    Args:
        raw_html: Raw HTML string from email body

    Returns:
        Plain text with normalized whitespace
    """
    if not raw_html:
        return ""

    soup = BeautifulSoup(raw_html, "html.parser")

    # Remove script, style, and head tags
    for tag in soup(['script', 'style', 'head', 'meta', 'link']):
        tag.decompose()

    # Convert links to text with URL
    for a in soup.find_all('a', href=True):
        href = a.get('href', '')
        text = a.get_text(strip=True)
        if href and text:
            a.replace_with(f"{text} ({href})")
        elif href:
            a.replace_with(href)

    # Convert <br> and </p> to newlines
    for br in soup.find_all('br'):
        br.replace_with('\n')
    for p in soup.find_all('p'):
        p.insert_after('\n')

    text = soup.get_text(separator=' ')

    # Normalize whitespace
    text = re.sub(r'[ \t]+', ' ', text)
    text = re.sub(r'\n\s*\n', '\n\n', text)
    text = re.sub(r'\n{3,}', '\n\n', text)

    return text.strip()


def normalize_body(raw: str) -> str:
    """Return plain text for a body that may be HTML or text."""
    if not raw:
        return ""
    if looks_like_html(raw):
        return html_to_text(raw)
    return raw.strip()


def remove_noise(text: str) -> str:
    """
    Remove signatures, disclaimers, reply history, and other noise.

    Args:
        text: Plain text email content

    Returns:
        Cleaned text with noise removed
    """
    if not text:
        return ""

    lines = text.split('\n')
    cleaned_lines = []
    in_quoted_section = False

    for line in lines:
        line_lower = line.lower().strip()

        if in_quoted_section and not line.strip():
            continue

        if any(re.match(pattern, line_lower, re.IGNORECASE) for pattern in REPLY_PATTERNS):
            in_quoted_section = True
            continue

        if in_quoted_section:
            if line.strip().startswith('>'):
                continue
            # A long unquoted line ends the reply block
            if len(line.strip()) > 50:
                in_quoted_section = False
            else:
                continue

        # Everything after a sign-off is signature
        if any(re.match(pattern, line_lower, re.IGNORECASE) for pattern in SIGNATURE_PATTERNS):
            break

        if any(re.search(pattern, line_lower, re.IGNORECASE) for pattern in DISCLAIMER_PATTERNS):
            continue

        if any(re.search(pattern, line_lower, re.IGNORECASE) for pattern in NOISE_PATTERNS):
            continue

        cleaned_lines.append(line)

    result = '\n'.join(cleaned_lines)
    result = re.sub(r'\n{3,}', '\n\n', result)
    result = re.sub(r'[ \t]+', ' ', result)

    return result.strip()


def extract_important_sections(text: str) -> Tuple[str, List[str]]:
    """
    Extract important lines (dates, times, course codes) to prepend.

    Args:
        text: Cleaned email text

    Returns:
        Tuple of (excerpts_string, list_of_excerpts)
    """
    excerpts = []

    for pattern in DATE_PATTERNS:
        for match in re.findall(pattern, text, re.IGNORECASE)[:2]:
            excerpt = f"DATE: {match}"
            if excerpt not in excerpts:
                excerpts.append(excerpt)

    for match in re.findall(TIME_PATTERN, text, re.IGNORECASE)[:2]:
        excerpt = f"TIME: {match}"
        if excerpt not in excerpts:
            excerpts.append(excerpt)

    for match in COURSE_CODE_PATTERN.findall(text)[:2]:
        excerpt = f"COURSE: {match}"
        if excerpt not in excerpts:
            excerpts.append(excerpt)

    if excerpts:
        excerpts_str = "IMPORTANT EXCERPTS:\n" + "\n".join(f"- {e}" for e in excerpts) + "\n\n"
    else:
        excerpts_str = ""

    return excerpts_str, excerpts


def trim_to_token_limit(text: str, max_chars: int = MAX_CHARS) -> str:
    """
    Trim text to stay within token limit while preserving important content.

    Args:
        text: Text to trim
        max_chars: Maximum characters

    Returns:
        Trimmed text that fits within limit
    """
    if len(text) <= max_chars:
        return text

    lines = text.split('\n')
    important_lines = []
    other_lines = []

    for line in lines:
        line_lower = line.lower()
        if any(kw in line_lower for kw in PRESERVE_KEYWORDS):
            important_lines.append(line)
        else:
            other_lines.append(line)

    # Important lines first, then fill with the rest
    important_text = '\n'.join(important_lines)
    remaining_chars = max_chars - len(important_text) - 100

    if remaining_chars > 0:
        other_text = '\n'.join(other_lines)[:remaining_chars]
        result = important_text + '\n\n' + other_text
    else:
        result = important_text[:max_chars]

    return result.strip()


def prepare_llm_input(body: str, max_chars: int = MAX_CHARS) -> str:
    """
    Full text processing for LLM prompts.

    Args:
        body: Plain text email body

    Returns:
        Excerpts followed by the noise-free, trimmed body
    """
    clean_text = remove_noise(body)
    trimmed_text = trim_to_token_limit(clean_text, max_chars=max_chars)
    excerpts_str, _ = extract_important_sections(trimmed_text)
    return excerpts_str + trimmed_text
