"""
File classification helpers: category detection, heuristic tags and
file-name utilities.
"""

from typing import List, Optional, Tuple

from shared.models import AssetCategory, dedupe

VIDEO_PROJECT_EXTS = {'prproj', 'aep', 'drp'}
VIDEO_EXPORT_EXTS = {'mp4', 'mov', 'webm'}
VIDEO_EXTS = {'mp4', 'mov', 'avi', 'mkv', 'webm'} | VIDEO_PROJECT_EXTS

GRAPHICS_PROJECT_EXTS = {'psd', 'ai'}
IMAGE_RAW_EXTS = {'raw', 'cr2', 'nef'}
IMAGE_EXTS = {'jpg', 'jpeg', 'png', 'gif', 'webp', 'tiff'} | IMAGE_RAW_EXTS | GRAPHICS_PROJECT_EXTS

AUDIO_PROJECT_EXTS = {'aup3', 'sesx'}
AUDIO_LOSSLESS_EXTS = {'wav', 'aiff', 'flac'}
AUDIO_EXTS = {'mp3', 'm4a', 'ogg'} | AUDIO_LOSSLESS_EXTS | AUDIO_PROJECT_EXTS

DOCUMENT_EXTS = {'pdf', 'doc', 'docx', 'xls', 'xlsx', 'ppt', 'pptx', 'txt', 'md'}

# (tag, substrings that trigger it), checked against the lower-cased name
_NAME_TAG_RULES = [
    # production stage
    ('raw', ('raw', 'original')),
    ('edit', ('edit', 'cut')),
    ('final', ('final', 'master')),
    ('draft', ('draft',)),
    ('needs-review', ('review',)),
    ('approved', ('approved',)),
    # content type
    ('b-roll', ('broll', 'b-roll')),
    ('interview', ('interview',)),
    ('music', ('music', 'track')),
    ('sfx', ('sfx', 'sound')),
    ('logo', ('logo',)),
    ('thumbnail', ('thumbnail',)),
    ('poster', ('poster',)),
    # resolution / codec
    ('4k', ('4k', '2160')),
    ('1080p', ('1080', 'hd')),
    ('720p', ('720',)),
    ('prores', ('prores',)),
    ('h264', ('h264', 'h.264')),
]


def file_extension(file_name: str) -> str:
    """Lower-cased extension without the dot, or '' when there is none."""
    base = file_name.rsplit('/', 1)[-1]
    if '.' not in base:
        return ''
    return base.rsplit('.', 1)[-1].lower()


def display_name(file_name: str) -> str:
    """File name without its last extension."""
    base = file_name.rsplit('/', 1)[-1]
    if '.' in base and not base.startswith('.'):
        return base.rsplit('.', 1)[0]
    return base


def detect_file_category(file_name: str, mime_type: str = '') -> Tuple[str, Optional[str]]:
    """
    Classify a file by MIME type and extension.

    Editing-project formats (Premiere, After Effects, Photoshop, ...) are
    reported as the "project" category even though their MIME type may say
    otherwise.

    Returns:
        (category, subcategory) where category is an AssetCategory value
    """
    ext = file_extension(file_name)
    mime_type = (mime_type or '').lower()

    if mime_type.startswith('video/') or ext in VIDEO_EXTS:
        if ext in VIDEO_PROJECT_EXTS:
            return AssetCategory.PROJECT.value, 'video-project'
        if ext in VIDEO_EXPORT_EXTS:
            return AssetCategory.VIDEO.value, 'export'
        return AssetCategory.VIDEO.value, 'raw'

    if mime_type.startswith('image/') or ext in IMAGE_EXTS:
        if ext in GRAPHICS_PROJECT_EXTS:
            return AssetCategory.PROJECT.value, 'graphics-project'
        if ext in IMAGE_RAW_EXTS:
            return AssetCategory.IMAGE.value, 'raw'
        return AssetCategory.IMAGE.value, 'export'

    if mime_type.startswith('audio/') or ext in AUDIO_EXTS:
        if ext in AUDIO_PROJECT_EXTS:
            return AssetCategory.PROJECT.value, 'audio-project'
        if ext in AUDIO_LOSSLESS_EXTS:
            return AssetCategory.AUDIO.value, 'lossless'
        return AssetCategory.AUDIO.value, 'compressed'

    if ext in DOCUMENT_EXTS:
        return AssetCategory.DOCUMENT.value, ext

    return AssetCategory.OTHER.value, None


def generate_smart_tags(file_name: str, category: str) -> List[str]:
    """Derive tags from the file name: category, stage, content and quality hints."""
    name_lower = file_name.lower()
    tags = [category]
    for tag, needles in _NAME_TAG_RULES:
        if any(n in name_lower for n in needles):
            tags.append(tag)
    return dedupe(tags)


def format_file_size(num_bytes: int) -> str:
    """Human readable size, e.g. 1536 -> '1.5 KB'."""
    if num_bytes <= 0:
        return '0 B'
    units = ['B', 'KB', 'MB', 'GB', 'TB']
    value = float(num_bytes)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    value = round(value, 1)
    if value == int(value):
        value = int(value)
    return f"{value} {units[i]}"
