"""Message objects for the .msg storage layout.

A message storage has:
- __properties_version1.0: top-level property stream (32 byte header)
- __substg1.0_* side streams for variable-length properties
- __recip_version1.0_#XXXXXXXX: one storage per recipient
- __attach_version1.0_#XXXXXXXX: one storage per attachment
- __nameid_version1.0: named property mapping

See [MS-OXMSG] 2.2.
"""

import logging
import mimetypes
import os
import re
from datetime import datetime, timezone

from ..mapi.properties import (
    PropertyFlags, DEFAULT_FLAGS, RECIP_STORAGE_PREFIX, ATTACH_STORAGE_PREFIX,
    PR_SUBJECT_W, PR_SUBJECT_PREFIX_W, PR_NORMALIZED_SUBJECT_W,
    PR_BODY_W, PR_HTML, PR_MESSAGE_CLASS_W,
    PR_RTF_COMPRESSED, PR_RTF_IN_SYNC, PR_INTERNET_MESSAGE_ID_W,
    PR_MESSAGE_FLAGS, PR_IMPORTANCE, PR_PRIORITY, PR_SENSITIVITY, PR_HASATTACH,
    PR_INTERNET_CPID, PR_MESSAGE_CODEPAGE, PR_STORE_SUPPORT_MASK,
    PR_MESSAGE_DELIVERY_TIME, PR_CLIENT_SUBMIT_TIME,
    PR_CREATION_TIME, PR_LAST_MODIFICATION_TIME,
    PR_DISPLAY_TO_W, PR_DISPLAY_CC_W, PR_DISPLAY_BCC_W,
    PR_SENDER_NAME_W, PR_SENDER_EMAIL_ADDRESS_W, PR_SENDER_ADDRTYPE_W,
    PR_SENT_REPRESENTING_NAME_W, PR_SENT_REPRESENTING_EMAIL_ADDRESS_W,
    PR_SENT_REPRESENTING_ADDRTYPE_W,
    PR_ROWID, PR_ENTRYID, PR_RECIPIENT_TYPE, PR_ADDRTYPE_W, PR_EMAIL_ADDRESS_W,
    PR_DISPLAY_NAME_W, PR_SEARCH_KEY, PR_OBJECT_TYPE, PR_DISPLAY_TYPE,
    PR_SMTP_ADDRESS_W, PR_RESPONSIBILITY,
    PR_ATTACH_NUM, PR_ATTACH_METHOD, PR_ATTACH_FILENAME_W, PR_ATTACH_LONG_FILENAME_W,
    PR_ATTACH_EXTENSION_W, PR_ATTACH_SIZE, PR_ATTACH_DATA_BIN, PR_ATTACH_MIME_TAG_W,
    PR_ATTACH_CONTENT_ID_W, PR_RENDERING_POSITION, PR_ATTACHMENT_HIDDEN,
    MSGFLAG_READ, MSGFLAG_UNSENT, MSGFLAG_HASATTACH, STORE_UNICODE_OK,
    ATTACH_BY_VALUE, MAPI_TO, MAPI_CC, MAPI_BCC, MAPI_MAILUSER, MAPI_ATTACH, DT_MAILUSER,
)
from ..rtf.encapsulate import to_rtf_bytes
from ..rtf.lzfu import compress, decompress, wrap_uncompressed
from ..storage.memory import Storage
from ..streams.named import NamedPropertyResolver
from ..streams.properties import (
    DEFAULT_CODEPAGE, TopLevelPropertySet, RecipientPropertySet, AttachmentPropertySet,
)
from ..structures.bitfields import MessageFormat
from ..structures.entry_id import AddressType, OneOffEntryId

logger = logging.getLogger(__name__)

_READABLE = PropertyFlags.PROPATTR_READABLE

# One to three letters, a colon and a blank: "RE: ", "FW: ", "AW: "
_SUBJECT_PREFIX = re.compile(r'^[^\W\d_]{1,3}: ')


def search_key(address_type, email):
    """PR_SEARCH_KEY: upper-cased ``TYPE:ADDRESS`` plus a null byte."""
    return f'{address_type}:{email}'.upper().encode('ascii', errors='replace') + b'\x00'


def split_subject(subject):
    """Split a subject into (PR_SUBJECT_PREFIX_W, PR_NORMALIZED_SUBJECT_W).

    The prefix keeps its colon and blank, and is empty when the subject
    does not start with one.
    """
    match = _SUBJECT_PREFIX.match(subject)
    if match is None:
        return '', subject
    return match.group(0), subject[match.end():]


def short_filename(filename):
    """8.3 style name for PR_ATTACH_FILENAME_W."""
    stem, ext = os.path.splitext(os.path.basename(filename))
    stem = ''.join(c for c in stem if c.isalnum())[:8] or 'ATTACH'
    return (stem + ext[:4]).upper()


class Recipient:
    """One recipient, written to its own __recip_version1.0_# storage."""

    def __init__(self, email, display_name=None, recipient_type=MAPI_TO,
                 address_type=AddressType.SMTP,
                 message_format=MessageFormat.TEXT_AND_HTML):
        self.email = email
        self.display_name = display_name or email
        self.recipient_type = recipient_type
        self.address_type = AddressType(address_type)
        self.message_format = message_format

    def __repr__(self):
        return f'<Recipient {self.display_name!r} <{self.email}> type={self.recipient_type}>'

    def entry_id(self):
        return OneOffEntryId.create(self.email, self.display_name, self.address_type,
                                    self.message_format).to_bytes()

    def build_properties(self, row_id, codepage=DEFAULT_CODEPAGE):
        props = RecipientPropertySet(codepage)
        props.add_property(PR_ROWID, row_id)
        props.add_property(PR_ENTRYID, self.entry_id())
        props.add_property(PR_RECIPIENT_TYPE, self.recipient_type)
        props.add_property(PR_ADDRTYPE_W, self.address_type.value)
        props.add_property(PR_EMAIL_ADDRESS_W, self.email)
        if self.address_type == AddressType.SMTP:
            props.add_property(PR_SMTP_ADDRESS_W, self.email)
        props.add_property(PR_OBJECT_TYPE, MAPI_MAILUSER)
        props.add_property(PR_DISPLAY_TYPE, DT_MAILUSER)
        props.add_property(PR_DISPLAY_NAME_W, self.display_name)
        props.add_property(PR_SEARCH_KEY, search_key(self.address_type.value, self.email))
        props.add_property(PR_RESPONSIBILITY, False)
        return props

    def write_properties(self, storage, row_id, codepage=DEFAULT_CODEPAGE):
        return self.build_properties(row_id, codepage).write_properties(storage)

    @classmethod
    def from_properties(cls, props):
        address_type = props.get_value(PR_ADDRTYPE_W, '')
        try:
            address_type = AddressType(address_type)
        except ValueError:
            logger.warning('Unknown recipient address type %r', address_type)
            address_type = AddressType.UNKNOWN
        return cls(email=props.get_value(PR_EMAIL_ADDRESS_W, ''),
                   display_name=props.get_value(PR_DISPLAY_NAME_W),
                   recipient_type=props.get_value(PR_RECIPIENT_TYPE, MAPI_TO),
                   address_type=address_type)


class Attachment:
    """One by-value attachment, written to its own __attach_version1.0_# storage."""

    def __init__(self, filename, data, mime_type=None, content_id=None,
                 inline=False, rendering_position=-1):
        self.filename = filename
        self.data = bytes(data)
        self.mime_type = (mime_type or mimetypes.guess_type(filename)[0]
                          or 'application/octet-stream')
        self.content_id = content_id
        self.inline = inline
        self.rendering_position = rendering_position

    def __repr__(self):
        return f'<Attachment {self.filename!r} {len(self.data)} bytes>'

    def build_properties(self, index, codepage=DEFAULT_CODEPAGE):
        now = datetime.now(timezone.utc)
        props = AttachmentPropertySet(codepage)
        props.add_property(PR_ATTACH_NUM, index, _READABLE)
        props.add_property(PR_RENDERING_POSITION, self.rendering_position, _READABLE)
        props.add_property(PR_OBJECT_TYPE, MAPI_ATTACH)
        props.add_property(PR_DISPLAY_NAME_W, self.filename)
        props.add_property(PR_ATTACH_FILENAME_W, short_filename(self.filename))
        props.add_property(PR_ATTACH_LONG_FILENAME_W, self.filename)
        props.add_property(PR_ATTACH_EXTENSION_W, os.path.splitext(self.filename)[1] or None)
        props.add_property(PR_ATTACH_CONTENT_ID_W, self.content_id)
        props.add_property(PR_ATTACH_MIME_TAG_W, self.mime_type)
        props.add_property(PR_ATTACH_METHOD, ATTACH_BY_VALUE)
        props.add_property(PR_ATTACH_DATA_BIN, self.data)
        props.add_property(PR_ATTACH_SIZE, len(self.data))
        if self.inline:
            props.add_property(PR_ATTACHMENT_HIDDEN, True)
        props.add_property(PR_CREATION_TIME, now)
        props.add_property(PR_LAST_MODIFICATION_TIME, now)
        props.add_property(PR_STORE_SUPPORT_MASK, STORE_UNICODE_OK, _READABLE)
        return props

    def write_properties(self, storage, index, codepage=DEFAULT_CODEPAGE):
        return self.build_properties(index, codepage).write_properties(storage)

    @classmethod
    def from_properties(cls, props):
        filename = (props.get_value(PR_ATTACH_LONG_FILENAME_W)
                    or props.get_value(PR_ATTACH_FILENAME_W)
                    or props.get_value(PR_DISPLAY_NAME_W) or 'attachment')
        return cls(filename, props.get_value(PR_ATTACH_DATA_BIN, b''),
                   mime_type=props.get_value(PR_ATTACH_MIME_TAG_W),
                   content_id=props.get_value(PR_ATTACH_CONTENT_ID_W),
                   inline=props.get_value(PR_ATTACHMENT_HIDDEN, False),
                   rendering_position=props.get_value(PR_RENDERING_POSITION, -1))


class Message:
    """An e-mail message and everything needed to lay it out in storages.

    Usage:
        msg = Message(subject='Hello', body_text='Hi there')
        msg.set_sender('peter@example.com', 'Peter Pan')
        msg.add_recipient('wendy@example.com', 'Wendy')
        root = msg.write()
    """

    def __init__(self, subject=None, body_text=None, body_html=None,
                 message_class='IPM.Note', codepage=DEFAULT_CODEPAGE, draft=False):
        self.codepage = codepage
        self.properties = TopLevelPropertySet(codepage)
        self.named = NamedPropertyResolver(self.properties)
        self.recipients = []
        self.attachments = []
        self.subject = subject
        self.body_text = body_text
        self.body_html = body_html
        self.message_class = message_class
        self.draft = draft
        self.sender_name = None
        self.sender_email = None
        self.sent_on = None
        self.internet_message_id = None
        self.importance = 1  # Normal
        self.priority = 0
        self.sensitivity = 0
        self._rtf_compressed = None

    def __repr__(self):
        return (f'<Message {self.subject!r} recipients={len(self.recipients)} '
                f'attachments={len(self.attachments)}>')

    # --- Building ---

    def set_sender(self, email, display_name=None):
        self.sender_email = email
        self.sender_name = display_name or email

    def add_recipient(self, email, display_name=None, recipient_type=MAPI_TO,
                      address_type=AddressType.SMTP):
        recipient = Recipient(email, display_name, recipient_type, address_type)
        self.recipients.append(recipient)
        return recipient

    def add_attachment(self, filename, data, mime_type=None, content_id=None, inline=False):
        attachment = Attachment(filename, data, mime_type, content_id, inline)
        self.attachments.append(attachment)
        return attachment

    def add_named_property(self, named_tag, value):
        return self.named.add_property(named_tag, value)

    def set_rtf_body(self, rtf, compressed=True):
        """Store an RTF body in PR_RTF_COMPRESSED.

        Args:
            rtf: RTF document as str (ASCII) or bytes.
            compressed: LZFu compress it, otherwise store it as MELA.
        """
        if isinstance(rtf, str):
            rtf = to_rtf_bytes(rtf)
        self._rtf_compressed = compress(rtf) if compressed else wrap_uncompressed(rtf)

    @property
    def rtf_body(self):
        """The decompressed RTF body, or None."""
        data = self._rtf_compressed
        if data is None:
            data = self.properties.get_value(PR_RTF_COMPRESSED)
        return decompress(data) if data is not None else None

    # --- Writing ---

    def _display_list(self, recipient_type):
        names = [r.display_name for r in self.recipients if r.recipient_type == recipient_type]
        return ';'.join(names)

    def _set_or_remove(self, tag, value, flags=DEFAULT_FLAGS):
        if value is None:
            self.properties.remove(tag)
        else:
            self.properties.add_or_replace_property(tag, value, flags)

    def build_properties(self):
        """Copy the message attributes into the top-level property set."""
        props = self.properties
        now = datetime.now(timezone.utc)

        flags = MSGFLAG_READ
        if self.draft:
            flags |= MSGFLAG_UNSENT
        if self.attachments:
            flags |= MSGFLAG_HASATTACH

        props.add_or_replace_property(PR_MESSAGE_CLASS_W, self.message_class)
        prefix = normalized = None
        if self.subject is not None:
            prefix, normalized = split_subject(self.subject)
        self._set_or_remove(PR_SUBJECT_W, self.subject)
        self._set_or_remove(PR_SUBJECT_PREFIX_W, prefix)
        self._set_or_remove(PR_NORMALIZED_SUBJECT_W, normalized)
        self._set_or_remove(PR_INTERNET_MESSAGE_ID_W, self.internet_message_id)
        props.add_or_replace_property(PR_STORE_SUPPORT_MASK, STORE_UNICODE_OK, _READABLE)
        props.add_or_replace_property(PR_HASATTACH, bool(self.attachments))
        props.add_or_replace_property(PR_MESSAGE_FLAGS, flags)
        props.add_or_replace_property(PR_IMPORTANCE, self.importance)
        props.add_or_replace_property(PR_PRIORITY, self.priority)
        props.add_or_replace_property(PR_SENSITIVITY, self.sensitivity)
        if self.sent_on is not None:
            props.add_or_replace_property(PR_CLIENT_SUBMIT_TIME, self.sent_on)
            props.add_or_replace_property(PR_MESSAGE_DELIVERY_TIME, self.sent_on)
        if PR_CREATION_TIME not in props:
            props.add_property(PR_CREATION_TIME, now)
        props.add_or_replace_property(PR_LAST_MODIFICATION_TIME, now)

        if self.sender_email:
            address_type = 'SMTP' if '@' in self.sender_email else 'EX'
            props.add_or_replace_property(PR_SENDER_NAME_W, self.sender_name)
            props.add_or_replace_property(PR_SENDER_EMAIL_ADDRESS_W, self.sender_email)
            props.add_or_replace_property(PR_SENDER_ADDRTYPE_W, address_type)
            props.add_or_replace_property(PR_SENT_REPRESENTING_NAME_W, self.sender_name)
            props.add_or_replace_property(PR_SENT_REPRESENTING_EMAIL_ADDRESS_W, self.sender_email)
            props.add_or_replace_property(PR_SENT_REPRESENTING_ADDRTYPE_W, address_type)

        if self.recipients:
            props.add_or_replace_property(PR_DISPLAY_TO_W, self._display_list(MAPI_TO), _READABLE)
            props.add_or_replace_property(PR_DISPLAY_CC_W, self._display_list(MAPI_CC), _READABLE)
            props.add_or_replace_property(PR_DISPLAY_BCC_W, self._display_list(MAPI_BCC), _READABLE)

        self._set_or_remove(PR_BODY_W, self.body_text)
        if self.body_html:
            html = self.body_html
            if isinstance(html, str):
                html = html.encode('utf-8')
            props.add_or_replace_property(PR_HTML, html)
            props.add_or_replace_property(PR_INTERNET_CPID, 65001)  # UTF-8
            props.add_or_replace_property(PR_MESSAGE_CODEPAGE, 65001)
        if self._rtf_compressed is not None:
            props.add_or_replace_property(PR_RTF_COMPRESSED, self._rtf_compressed)
            props.add_or_replace_property(PR_RTF_IN_SYNC, True)
        return props

    def write(self, storage=None):
        """Lay the message out under storage (a new in-memory Storage by default).

        Returns:
            The storage written to.
        """
        if storage is None:
            storage = Storage()
        message_size = 0

        for index, recipient in enumerate(self.recipients):
            sub = storage.open_storage(f'{RECIP_STORAGE_PREFIX}{index:08X}')
            message_size += recipient.write_properties(sub, index, self.codepage)

        for index, attachment in enumerate(self.attachments):
            sub = storage.open_storage(f'{ATTACH_STORAGE_PREFIX}{index:08X}')
            message_size += attachment.write_properties(sub, index, self.codepage)

        props = self.build_properties()
        props.next_recipient_id = len(self.recipients)
        props.next_attachment_id = len(self.attachments)
        props.recipient_count = len(self.recipients)
        props.attachment_count = len(self.attachments)

        self.named.write_properties(storage)
        props.write_properties(storage, message_size)
        logger.debug('Wrote %r', self)
        return storage


def _sub_storages(storage, prefix):
    names = [name for name in storage.list_storages() if name.startswith(prefix)]
    return sorted(names, key=lambda name: int(name[len(prefix):], 16))


def read_message(storage, codepage=DEFAULT_CODEPAGE):
    """Decode a message storage (in-memory or olefile backed) into a Message.

    Raises:
        FormatViolation: if any property stream is malformed.
    """
    props = TopLevelPropertySet.read_properties(storage, codepage)
    message = Message(codepage=codepage)
    message.properties = props
    message.named = NamedPropertyResolver.read_properties(storage, props)

    message.message_class = props.get_value(PR_MESSAGE_CLASS_W, 'IPM.Note')
    message.subject = props.get_value(PR_SUBJECT_W)
    message.body_text = props.get_value(PR_BODY_W)
    html = props.get_value(PR_HTML)
    message.body_html = html.decode('utf-8', errors='replace') if html is not None else None
    message.internet_message_id = props.get_value(PR_INTERNET_MESSAGE_ID_W)
    message.sender_name = props.get_value(PR_SENDER_NAME_W)
    message.sender_email = props.get_value(PR_SENDER_EMAIL_ADDRESS_W)
    message.sent_on = props.get_value(PR_CLIENT_SUBMIT_TIME)
    message.importance = props.get_value(PR_IMPORTANCE, 1)
    message.priority = props.get_value(PR_PRIORITY, 0)
    message.sensitivity = props.get_value(PR_SENSITIVITY, 0)
    message.draft = bool(props.get_value(PR_MESSAGE_FLAGS, 0) & MSGFLAG_UNSENT)
    message._rtf_compressed = props.get_value(PR_RTF_COMPRESSED)

    for name in _sub_storages(storage, RECIP_STORAGE_PREFIX):
        sub = storage.open_storage(name, create=False)
        recipient_props = RecipientPropertySet.read_properties(sub, codepage)
        message.recipients.append(Recipient.from_properties(recipient_props))

    for name in _sub_storages(storage, ATTACH_STORAGE_PREFIX):
        sub = storage.open_storage(name, create=False)
        attachment_props = AttachmentPropertySet.read_properties(sub, codepage)
        message.attachments.append(Attachment.from_properties(attachment_props))

    return message
