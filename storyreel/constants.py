"""All magic numbers and configuration constants."""

FPS = 30                            # output frame rate
PAD_MS = 800                        # ms of silence held after narration ends
FALLBACK_MS = 3000                  # ms on screen for a page with no narration
TITLE_HOLD_FRAMES = 90              # title card length, in frames (3s at 30fps)
BUS_SAMPLE_RATE = 48000             # mix bus rate, 1600 samples per frame at 30fps
NARRATION_PCM_RATE = 24000          # raw TTS PCM from the generation service
NARRATION_PCM_CHANNELS = 1
VIDEO_BITRATE = "8M"
AUDIO_BITRATE = "128k"
CHUNK_SIZE = 64 * 1024              # bytes read per encoder stdout chunk
VIDEO_QUEUE_FRAMES = 8              # frames buffered ahead of the encoder
IMAGE_FETCH_TIMEOUT = 15            # seconds per remote illustration
ENCODER_FINISH_TIMEOUT = 300        # seconds to wait for the encoder to flush

# Palette
BACKGROUND_COLOR = "#FFFBF5"
BORDER_COLOR = "#F59E0B"
TITLE_COLOR = "#451a03"
SUBTITLE_COLOR = "#78350f"
CAPTION_COLOR = "#292524"
OUTLINE_COLOR = "white"
SHADOW_RGBA = (0, 0, 0, 51)         # rgba(0,0,0,0.2)

BORDER_INSET = 40
BORDER_WIDTH = 10
OUTLINE_WIDTH = 6
TITLE_LINE_HEIGHT = 100
TITLE_SIDE_MARGIN = 200             # title box = frame width minus this
CARD_MAT = 20                       # white mat around the illustration
SHADOW_BLUR = 30
SHADOW_OFFSET_Y = 10
BACKDROP_BLUR = 30
BACKDROP_OPACITY = 0.4
SUBTITLE_TEXT = "AI Bible Story Weaver"

# Fonts tried in order; the first one Pillow can open wins
SERIF_FONTS = [
    "GowunBatang-Bold.ttf",
    "NanumMyeongjoBold.ttf",
    "NotoSerifCJK-Bold.ttc",
    "DejaVuSerif-Bold.ttf",
]
SANS_FONTS = [
    "NotoSansKR-Regular.ttf",
    "NotoSansCJK-Regular.ttc",
    "NanumGothic.ttf",
    "DejaVuSans.ttf",
]

# Capture formats in preference order
MIME_CANDIDATES = [
    "video/webm;codecs=vp9,opus",
    "video/webm;codecs=vp8,opus",
    "video/webm",
    "video/mp4",
]

OUTPUT_DIR = "output"
VERSION = "0.1.0"
