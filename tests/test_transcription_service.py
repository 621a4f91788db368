import asyncio

import pytest

from hkdesk.services.llm import LLMError
from hkdesk.services.transcription_service import AudioTranscriber, audio_extension
from hkdesk.services.whatsapp_service import MediaDownload
from tests.helpers import FakeWhatsApp, ScriptedLLM


@pytest.fixture
def voice_note():
    return FakeWhatsApp(media=MediaDownload(content=b"OggS-voice", mime_type="audio/ogg"))


class TestAudioExtension:
    @pytest.mark.parametrize(
        "mime_type,expected",
        [
            ("audio/ogg; codecs=opus", ".ogg"),
            ("audio/mpeg", ".mp3"),
            ("audio/wav", ".wav"),
            ("audio/mp4", ".m4a"),
            (None, ".ogg"),
        ],
    )
    def test_extension(self, mime_type, expected):
        assert audio_extension(mime_type) == expected


class TestAudioTranscriber:
    def test_returns_transcript_and_removes_file(self, settings, voice_note):
        transcriber = AudioTranscriber(settings, voice_note, ScriptedLLM(transcript="Shower is leaking in 204"))

        text = asyncio.run(transcriber.transcribe("audio-1"))

        assert text == "Shower is leaking in 204"
        assert list(transcriber.download_dir.iterdir()) == []

    def test_empty_transcript_raises(self, settings, voice_note):
        transcriber = AudioTranscriber(settings, voice_note, ScriptedLLM(transcript=""))

        with pytest.raises(ValueError):
            asyncio.run(transcriber.transcribe("audio-1"))

    def test_provider_error_propagates_and_cleans_up(self, settings, voice_note):
        llm = ScriptedLLM(transcribe_error=LLMError("OpenAI transcription error: 500"))
        transcriber = AudioTranscriber(settings, voice_note, llm)

        with pytest.raises(LLMError):
            asyncio.run(transcriber.transcribe("audio-1"))
        assert list(transcriber.download_dir.iterdir()) == []

    def test_media_id_cannot_escape_download_dir(self, settings, voice_note):
        filenames = []

        class RecordingLLM(ScriptedLLM):
            async def transcribe_audio(self, *, audio_bytes, filename, mime_type=None, model=None, language=None):
                filenames.append(filename)
                return "Broken heater"

        transcriber = AudioTranscriber(settings, voice_note, RecordingLLM())

        asyncio.run(transcriber.transcribe("../../etc/audio-1"))

        assert filenames[0].startswith("whatsapp_audio_etcaudio-1_")
        assert "/" not in filenames[0]
        assert not (transcriber.download_dir.parent.parent / "etc").exists()
