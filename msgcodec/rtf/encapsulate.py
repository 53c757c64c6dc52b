"""Wrap plain text or HTML in RTF for PR_RTF_COMPRESSED.

HTML is stored the way Outlook's "fromhtml" encapsulation expects, see
[MS-OXRTFEX] 2.1. Only the escaping is done here; the result is normally
handed to rtf.lzfu.compress().
"""

_ESCAPED = '{}\\'


def escape_rtf(text: str, keep_newlines: bool = False) -> str:
    """Escape text for use inside an RTF group.

    Control characters are dropped (newlines become \\par when
    keep_newlines is set), Latin-1 characters become \\'hh and anything
    else becomes \\uN? with N the signed 16-bit UTF-16 code unit.
    """
    out = []
    for char in text:
        code = ord(char)
        if code <= 31:
            if keep_newlines and char == '\n':
                out.append('\\par\n')
            elif keep_newlines and char == '\t':
                out.append('\\tab ')
            continue
        if code <= 127:
            if char in _ESCAPED:
                out.append('\\')
            out.append(char)
        elif code <= 255:
            out.append(f"\\'{code:02x}")
        else:
            units = char.encode('utf-16-le', errors='surrogatepass')
            for i in range(0, len(units), 2):
                unit = int.from_bytes(units[i:i + 2], 'little')
                if unit > 0x7FFF:
                    unit -= 0x10000
                out.append(f'\\u{unit}?')
    return ''.join(out)


def html_to_rtf(html: str) -> str:
    """Encapsulate an HTML body as a fromhtml RTF document."""
    return ('{\\rtf1\\ansi\\ansicpg1252\\fromhtml1 {\\*\\htmltag1 '
            + escape_rtf(html) + ' }}')


def text_to_rtf(text: str) -> str:
    """Wrap a plain text body as a minimal RTF document."""
    return ('{\\rtf1\\ansi\\ansicpg1252\\deff0{\\fonttbl{\\f0\\fswiss Arial;}}'
            '\\f0\\fs20 ' + escape_rtf(text, keep_newlines=True) + '}')


def to_rtf_bytes(rtf: str) -> bytes:
    """RTF documents are 7-bit once escaped."""
    return rtf.encode('ascii')
