"""
Tests for the MIME message encoder
"""
import base64
import email
import email.utils

from mailrelay.core.email.encoder import (
    decode_subject,
    encode_body,
    encode_header,
    encode_message,
    encode_word,
    format_address,
)


def build(**overrides):
    params = {
        "from_address": "a@x.com",
        "from_display_name": "Escola",
        "to_address": "b@y.com",
        "subject": "Hello",
        "body": "Hi there",
        "is_html": False,
    }
    params.update(overrides)
    return encode_message(**params)


def header_block(message: bytes) -> str:
    return message.split(b"\r\n\r\n", 1)[0].decode("utf-8")


class TestEncodedWords:
    """Tests for header encoding"""

    def test_encode_word_format(self):
        """Encoded words use the UTF-8 base64 form"""
        assert encode_word("Olá") == "=?UTF-8?B?" + base64.b64encode("Olá".encode()).decode() + "?="

    def test_subject_survives_any_characters(self):
        """Accents, emoji and CJK decode back unchanged"""
        for subject in ["Olá, turma!", "Reunião 📅 amanhã", "通知", "plain ascii"]:
            assert decode_subject(encode_word(subject)) == subject

    def test_long_subject_folds_into_short_words(self):
        """Each encoded-word stays within 75 characters and each line within 78"""
        subject = "Convocação para a reunião de pais 📅 " * 20

        encoded = encode_header(subject)

        lines = encoded.split("\r\n")
        assert len(lines) > 1
        assert all(line.startswith(" =?UTF-8?B?") for line in lines[1:])
        assert all(len(line.strip()) <= 75 for line in lines)
        assert decode_subject(encoded) == subject

    def test_short_subject_is_one_word(self):
        assert encode_header("Olá") == encode_word("Olá")

    def test_decode_plain_value(self):
        """Values without encoded words pass through"""
        assert decode_subject("Hello") == "Hello"


class TestAddresses:
    """Tests for From/To rendering"""

    def test_ascii_display_name(self):
        assert format_address("a@x.com", "Escola") == "Escola <a@x.com>"

    def test_non_ascii_display_name_encoded(self):
        """A non-ASCII name never reaches the header raw"""
        rendered = format_address("a@x.com", "Escola São Paulo")

        assert rendered.isascii()
        assert rendered.endswith(" <a@x.com>")
        assert decode_subject(rendered.rsplit(" <", 1)[0]) == "Escola São Paulo"

    def test_display_name_with_specials_is_quoted(self):
        """A comma in the name must not split the mailbox list"""
        rendered = format_address("a@x.com", "Escola, Unidade 1")

        assert email.utils.getaddresses([rendered]) == [("Escola, Unidade 1", "a@x.com")]

    def test_from_header_parses_to_one_mailbox(self):
        message = email.message_from_bytes(build(from_display_name='Escola "Central"; <Unidade>'))

        assert email.utils.getaddresses([message["From"]]) == [
            ('Escola "Central"; <Unidade>', "a@x.com")
        ]

    def test_empty_display_name(self):
        """Empty name gives the bare address"""
        assert format_address("a@x.com", "") == "a@x.com"


class TestBody:
    """Tests for body encoding"""

    def test_body_wrapped_at_76_columns(self):
        """Long bodies wrap at 76 characters by default"""
        lines = encode_body("x" * 500).split("\r\n")

        assert len(lines) > 1
        assert all(len(line) <= 76 for line in lines)
        assert all(len(line) == 76 for line in lines[:-1])

    def test_body_unwrapped(self):
        """wrap=False emits one line"""
        encoded = encode_body("x" * 500, wrap=False)

        assert "\r\n" not in encoded
        assert base64.b64decode(encoded) == b"x" * 500

    def test_empty_body(self):
        assert encode_body("") == ""


class TestEncodeMessage:
    """Tests for the complete message"""

    def test_header_order(self):
        """Headers appear in a fixed order"""
        names = [line.split(":", 1)[0] for line in header_block(build()).split("\r\n")]

        assert names == [
            "From",
            "To",
            "Subject",
            "MIME-Version",
            "Content-Type",
            "Content-Transfer-Encoding",
        ]

    def test_plain_and_html_content_types(self):
        """is_html selects text/html"""
        assert "Content-Type: text/plain; charset=UTF-8" in header_block(build())
        assert "Content-Type: text/html; charset=UTF-8" in header_block(build(is_html=True))

    def test_crlf_only(self):
        """Every line ends with CRLF, including for bodies with bare LF"""
        message = build(body="line one\nline two\n" * 40)

        assert b"\n" not in message.replace(b"\r\n", b"")
        assert message.endswith(b"\r\n")

    def test_parses_back(self):
        """A stock parser recovers subject, sender and body"""
        message = email.message_from_bytes(
            build(subject="Aviso: prova amanhã", body="Conteúdo <b>importante</b>", is_html=True)
        )

        assert decode_subject(message["Subject"]) == "Aviso: prova amanhã"
        assert message["To"] == "b@y.com"
        assert message.get_content_type() == "text/html"
        assert message.get_content_charset() == "utf-8"
        assert message.get_payload(decode=True).decode("utf-8") == "Conteúdo <b>importante</b>"

    def test_header_block_is_ascii(self):
        """Non-ASCII input never leaks into the header block"""
        message = build(subject="Olá", from_display_name="São", body="ção")

        assert header_block(message).isascii()

    def test_long_subject_parses_back(self):
        """A folded subject survives a stock parser"""
        subject = "Aviso importante sobre a matrícula do próximo semestre " * 8
        message = email.message_from_bytes(build(subject=subject))

        assert decode_subject(message["Subject"]) == subject
        assert all(len(line) <= 998 for line in build(subject=subject).split(b"\r\n"))
