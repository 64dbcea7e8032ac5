"""Display-name cleanup for documents dropped by print drivers.

Print drivers and virtual PDF printers decorate the output file name with
spooler job suffixes, the producing application's name and mangled accents
(``Relat_303_263rio`` for ``Relatório``). ``clean_file_name`` turns those
names back into something a person recognises. It is a pure function;
cleaning a name without hyphenated segments a second time returns it
unchanged.
"""

from __future__ import annotations

import re
from typing import Tuple

_JOB_SUFFIX = re.compile(r"(?:-job_\d+)+\.pdf$", re.IGNORECASE)

_PRODUCER_APPS = (
    "Bloco de notas",
    "Notepad",
    "Microsoft Word",
    "Word",
    "Microsoft Excel",
    "Excel",
    "PowerPoint",
    "LibreOffice",
    "OpenOffice",
    "Writer",
    "Calc",
    "Mozilla Firefox",
    "Firefox",
    "Google Chrome",
    "Chrome",
    "Adobe Reader",
    "Acrobat Reader",
    "PDF Reader",
    "Paint",
    "Photoshop",
    "Illustrator",
    "TextEdit",
    "Sublime Text",
    "VSCode",
    "Visual Studio",
    "Outlook",
    "Thunderbird",
    "Teams",
    "Zoom",
    "Skype",
)

# Drivers replace spaces inside the application name with underscores.
_PRODUCER_SEGMENT = re.compile(
    r"(?:[_\s]*[-–—][-–—]*[_\s]*|[_\s]+-)"
    r"(?:" + "|".join(app.replace(" ", r"[\s_]") for app in _PRODUCER_APPS) + r")"
    r"(?:\s*[-–—][_\s]*|[_\s]+)",
    re.IGNORECASE,
)

_TRAILING_SEGMENT = re.compile(
    r"(?:_-_|_-|\s-\s|\s-|-)"
    r"(?:[A-Za-zÀ-ÖØ-öø-ÿ0-9\s]+)"
    r"(?=-job_|\.|$)",
    re.IGNORECASE,
)

# Octal UTF-8 byte sequences left behind when a driver escapes non-ASCII
# characters; each key decodes to its value.
_MISDECODED_SEQUENCES = {
    "342_200_223": "–",
    "342_200_224": "—",
    "342_200_230": "‘",
    "342_200_231": "’",
    "303_240": "à",
    "303_241": "á",
    "303_242": "â",
    "303_243": "ã",
    "303_244": "ä",
    "303_245": "å",
    "303_246": "æ",
    "303_247": "ç",
    "303_250": "è",
    "303_251": "é",
    "303_252": "ê",
    "303_255": "í",
    "303_261": "ñ",
    "303_262": "ò",
    "303_263": "ó",
    "303_264": "ô",
    "303_265": "õ",
    "303_266": "ö",
    "303_272": "ú",
    "303_274": "ü",
    "303_201": "Á",
    "303_207": "Ç",
    "303_211": "É",
    "303_223": "Ó",
}

_MISDECODED = re.compile(
    "|".join(f"_?{code}" for code in _MISDECODED_SEQUENCES)
)

_INTERMEDIATE_EXTENSION = re.compile(
    r"\.(?:txt|doc|docx|xls|xlsx|ppt|pptx|odt|ods|odp|html|htm)\.(pdf)$",
    re.IGNORECASE,
)
_WHITESPACE = re.compile(r"\s+")
_DOUBLE_PDF = re.compile(r"\.pdf\.pdf$", re.IGNORECASE)


def _remap_sequence(match: re.Match[str]) -> str:
    return _MISDECODED_SEQUENCES[match.group(0).lstrip("_")]


def _clean_once(name: str, *, strip_trailing: bool) -> Tuple[str, bool]:
    cleaned = _JOB_SUFFIX.sub(".pdf", name)
    cleaned = _PRODUCER_SEGMENT.sub("", cleaned, count=1)
    stripped = False
    if strip_trailing:
        cleaned, count = _TRAILING_SEGMENT.subn("", cleaned, count=1)
        stripped = count > 0
    cleaned = _MISDECODED.sub(_remap_sequence, cleaned)
    cleaned = cleaned.replace("_", " ")
    cleaned = _INTERMEDIATE_EXTENSION.sub(r".\1", cleaned)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    cleaned = _DOUBLE_PDF.sub(".pdf", cleaned)
    return cleaned, stripped


def clean_file_name(file_name: str) -> str:
    """Return the display name for a document produced by a print driver.

    The trailing free-text segment is stripped at most once per name, so
    hyphenated titles such as ``my-report-final.pdf`` keep their head.

    Examples:
        >>> clean_file_name("report-job_42.pdf")
        'report.pdf'
        >>> clean_file_name("Relat_303_263rio_Mensal.pdf")
        'Relatório Mensal.pdf'
        >>> clean_file_name("my-report-final.pdf")
        'my-report.pdf'
    """
    # Every pass either shortens the name or replaces underscores, so this
    # terminates.
    current = file_name
    strip_trailing = True
    while True:
        cleaned, stripped = _clean_once(current, strip_trailing=strip_trailing)
        if stripped:
            strip_trailing = False
        if cleaned == current:
            break
        current = cleaned

    stem = current[: -len(".pdf")] if current.lower().endswith(".pdf") else current
    if not stem.strip():
        return file_name
    return current
