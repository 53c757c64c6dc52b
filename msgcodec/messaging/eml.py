"""EML file parser: builds a Message from an RFC 5322 message.

Uses Python's built-in email module to parse the message and copies the
headers, bodies and attachments onto a messaging.message.Message.
"""

import email
import email.header
import email.policy
import email.utils
import logging
import re
from pathlib import Path

from ..mapi.named import NamedPropertyTag, PS_INTERNET_HEADERS
from ..mapi.properties import MAPI_TO, MAPI_CC, MAPI_BCC, PropertyType
from ..rtf.encapsulate import html_to_rtf, text_to_rtf
from .message import Message

logger = logging.getLogger(__name__)

# Headers kept as PS_INTERNET_HEADERS named properties
INTERNET_HEADERS = ('X-Mailer', 'List-Id', 'List-Unsubscribe')


def parse_eml_bytes(data):
    """Parse raw EML bytes into a dict of message fields.

    Returns:
        Dict with keys:
            subject, body_text, body_html, message_id, headers,
            sender_name, sender_email, sent_on, importance, priority,
            recipients: [{name, email, recipient_type}],
            attachments: [{filename, data, mime_type, content_id, inline}]
    """
    msg = email.message_from_bytes(data, policy=email.policy.compat32)

    result = {
        'subject': _header(msg, 'Subject'),
        'body_text': None,
        'body_html': None,
        'message_id': _header(msg, 'Message-ID') or None,
        'headers': {},
        'sender_name': '',
        'sender_email': '',
        'sent_on': None,
        'importance': 1,  # Normal
        'priority': 0,
        'recipients': [],
        'attachments': [],
    }

    # Parse sender
    from_header = _header(msg, 'From')
    if from_header:
        parsed = email.utils.parseaddr(from_header)
        result['sender_name'] = parsed[0] or parsed[1]
        result['sender_email'] = parsed[1]

    # Parse date
    date_header = msg.get('Date') or ''
    if date_header:
        try:
            result['sent_on'] = email.utils.parsedate_to_datetime(date_header)
        except (TypeError, ValueError):
            logger.warning('Unparseable Date header %r', date_header)

    # Parse importance / priority
    importance = (msg.get('Importance') or '').lower()
    x_priority = (msg.get('X-Priority') or '').strip()[:1]
    if importance == 'high' or x_priority in ('1', '2'):
        result['importance'] = 2
        result['priority'] = 1
    elif importance == 'low' or x_priority in ('4', '5'):
        result['importance'] = 0
        result['priority'] = -1

    for name in INTERNET_HEADERS:
        value = _header(msg, name)
        if value:
            result['headers'][name] = value

    # Parse recipients
    for header, rtype in [('To', MAPI_TO), ('Cc', MAPI_CC), ('Bcc', MAPI_BCC)]:
        values = msg.get_all(header) or []
        for name, addr in email.utils.getaddresses([_decode(v) for v in values]):
            if addr:
                result['recipients'].append({
                    'name': name or addr,
                    'email': addr,
                    'recipient_type': rtype,
                })

    # Parse body and attachments
    if msg.is_multipart():
        _process_multipart(msg, result)
    else:
        content_type = msg.get_content_type()
        charset = msg.get_content_charset() or 'utf-8'
        if content_type == 'text/plain':
            result['body_text'] = _decode_payload(msg, charset)
        elif content_type == 'text/html':
            result['body_html'] = _decode_payload(msg, charset)
        else:
            # Single non-text part, treat as attachment
            _add_attachment(msg, result)

    return result


def parse_eml_file(filepath):
    """Parse an .eml file, see parse_eml_bytes()."""
    return parse_eml_bytes(Path(filepath).read_bytes())


def _decode(value):
    """Decode RFC 2047 encoded words in a header value."""
    parts = []
    for text, charset in email.header.decode_header(str(value)):
        if isinstance(text, bytes):
            try:
                text = text.decode(charset or 'ascii')
            except (UnicodeDecodeError, LookupError):
                text = text.decode('utf-8', errors='replace')
        parts.append(text)
    return ''.join(parts)


def _header(msg, name):
    value = msg.get(name)
    return _decode(value).strip() if value is not None else ''


def _process_multipart(msg, result):
    """Walk a multipart MIME message."""
    for part in msg.walk():
        if part.is_multipart():
            continue

        content_type = part.get_content_type()
        content_disposition = str(part.get('Content-Disposition', ''))
        charset = part.get_content_charset() or 'utf-8'

        if 'attachment' in content_disposition:
            _add_attachment(part, result)
        elif content_type == 'text/plain' and result['body_text'] is None:
            result['body_text'] = _decode_payload(part, charset)
        elif content_type == 'text/html' and result['body_html'] is None:
            result['body_html'] = _decode_payload(part, charset)
        elif content_type.startswith(('image/', 'application/')):
            _add_attachment(part, result)


def _decode_payload(part, charset='utf-8'):
    """Decode a MIME part's payload to str."""
    payload = part.get_payload(decode=True)
    if payload is None:
        return ''
    try:
        return payload.decode(charset)
    except (UnicodeDecodeError, LookupError):
        return payload.decode('utf-8', errors='replace')


def _add_attachment(part, result):
    """Extract attachment data from a MIME part."""
    payload = part.get_payload(decode=True)
    if payload is None:
        return

    filename = part.get_filename()
    if filename:
        filename = _decode(filename)
    else:
        ext = part.get_content_type().split('/')[-1]
        filename = f'attachment_{len(result["attachments"])}.{ext}'

    content_id = part.get('Content-ID')
    if content_id:
        content_id = str(content_id).strip().strip('<>')
    disposition = str(part.get('Content-Disposition', ''))

    result['attachments'].append({
        'filename': filename,
        'data': payload,
        'mime_type': part.get_content_type(),
        'content_id': content_id or None,
        'inline': 'inline' in disposition or (bool(content_id) and 'attachment' not in disposition),
    })


def html_to_text(html):
    """Rough plain text rendering of an HTML body."""
    text = re.sub(r'<(script|style)[^>]*>.*?</\1>', '', html, flags=re.S | re.I)
    text = re.sub(r'<br\s*/?>|</p>', '\n', text, flags=re.I)
    text = re.sub(r'<[^>]+>', '', text)
    text = re.sub(r'&nbsp;', ' ', text)
    text = re.sub(r'&lt;', '<', text)
    text = re.sub(r'&gt;', '>', text)
    text = re.sub(r'&amp;', '&', text)
    text = re.sub(r'\n\s*\n', '\n\n', text).strip()
    return text


def message_from_parsed(parsed, rtf=False):
    """Build a Message from the dict parse_eml_bytes() returns.

    Args:
        parsed: Parsed EML fields.
        rtf: Also store the body as compressed RTF (HTML encapsulated
            when there is an HTML body).
    """
    body_text = parsed.get('body_text')
    body_html = parsed.get('body_html')
    if body_text is None and body_html:
        body_text = html_to_text(body_html)

    message = Message(subject=parsed.get('subject') or None,
                      body_text=body_text, body_html=body_html)
    message.internet_message_id = parsed.get('message_id')
    message.sent_on = parsed.get('sent_on')
    message.importance = parsed.get('importance', 1)
    message.priority = parsed.get('priority', 0)

    if parsed.get('sender_email'):
        message.set_sender(parsed['sender_email'], parsed.get('sender_name'))
    for recipient in parsed.get('recipients', []):
        message.add_recipient(recipient['email'], recipient['name'],
                              recipient['recipient_type'])
    for attachment in parsed.get('attachments', []):
        message.add_attachment(attachment['filename'], attachment['data'],
                               attachment.get('mime_type'), attachment.get('content_id'),
                               attachment.get('inline', False))
    for name, value in parsed.get('headers', {}).items():
        tag = NamedPropertyTag(PS_INTERNET_HEADERS, PropertyType.PT_UNICODE,
                               name=name.lower())
        message.add_named_property(tag, value)

    if rtf:
        if body_html:
            message.set_rtf_body(html_to_rtf(body_html))
        elif body_text:
            message.set_rtf_body(text_to_rtf(body_text))
    return message


def message_from_eml(data, rtf=False):
    """Parse EML bytes straight into a Message."""
    return message_from_parsed(parse_eml_bytes(data), rtf=rtf)
