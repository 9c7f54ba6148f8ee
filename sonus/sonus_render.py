"""
Rendering: drives a Sound's iterator for a fixed number of samples and hands
them to a sink, or writes them to a mono 32-bit PCM WAV file.
"""
import math
import struct
import wave
from typing import Any, Callable, List

from sonus.sonus_datatypes import TypeMismatch, is_real
from sonus.sonus_sound import Sound, lift

DEFAULT_SAMPLERATE = 44100
PCM_MAX = 2 ** 31 - 1
PCM_MIN = -2 ** 31


def as_sound(value: Any) -> Sound:
    """Reals render as constants; anything else that is not a Sound is an error."""
    if isinstance(value, Sound) or is_real(value):
        return lift(value)
    raise TypeMismatch('render', (value,))


def sample_count(samplerate: float, seconds: float) -> int:
    return max(int(seconds * samplerate), 0)


def render(sound: Any, samplerate: float, seconds: float, sink: Callable[[float], Any]) -> int:
    """Calls sink(sample) once for each of the first int(seconds * samplerate)
    samples, starting from sample 0. Returns the number of samples emitted."""
    it = as_sound(sound).iter(samplerate)
    count = sample_count(samplerate, seconds)
    for _ in range(count):
        sink(next(it))
    return count


def samples(sound: Any, samplerate: float, seconds: float) -> List[float]:
    out: List[float] = []
    render(sound, samplerate, seconds, out.append)
    return out


def to_pcm32(sample: float) -> int:
    """Scales a [-1, 1] sample to a signed 32-bit integer, saturating; NaN is 0."""
    if math.isnan(sample):
        return 0
    scaled = sample * PCM_MAX
    if scaled >= PCM_MAX:
        return PCM_MAX
    if scaled <= PCM_MIN:
        return PCM_MIN
    return int(scaled)


def write_wav(path, sound: Any, seconds: float, samplerate: int = DEFAULT_SAMPLERATE) -> int:
    """Renders `seconds` of sound into a single-channel 32-bit PCM WAV file."""
    frames = bytearray()
    pack = struct.Struct('<i').pack
    count = render(sound, samplerate, seconds, lambda s: frames.extend(pack(to_pcm32(s))))
    with wave.open(str(path), 'wb') as wf:
        wf.setnchannels(1)
        wf.setsampwidth(4)
        wf.setframerate(int(samplerate))
        wf.writeframes(bytes(frames))
    return count
