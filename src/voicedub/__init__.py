"""
Voicedub - Multi-speaker video dubbing with voice cloning and dual subtitles.

A pipeline for:
- Extracting audio from videos
- Transcribing speech with speaker diarization (AssemblyAI)
- Translating transcripts line-by-line with GPT
- Synthesizing speech per speaker with OpenAI or ElevenLabs TTS (incl. voice cloning)
- Placing synthesized clips on a timeline and ducking the original audio
- Muxing the dub with original and translated subtitle tracks
"""

__version__ = "0.1.0"
