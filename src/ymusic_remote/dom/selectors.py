"""CSS selectors and markers for the Yandex Music player bar."""

from __future__ import annotations

PLAYER_BAR_PRIMARY = ".PlayerBarDesktopWithBackgroundProgressBar_root__bpmwN"
PLAYER_BAR_FALLBACK = "[data-test-id='PLAYERBAR_DESKTOP']"

SONATA_SECTION = ".PlayerBarDesktopWithBackgroundProgressBar_sonata__mGFb_"
SONATA_BUTTONS = ".BaseSonataControlsDesktop_sonataButtons__7vLtw button"

PAUSE_BUTTON = "button.BaseSonataControlsDesktop_sonataButton__GbwFt[data-test-id='PAUSE_BUTTON']"
PLAY_BUTTON = "button.BaseSonataControlsDesktop_sonataButton__GbwFt[data-test-id='PLAY_BUTTON']"
# Play buttons on album covers share the test id; this class tells them apart.
PLAY_BUTTON_WITH_COVER_CLASS = "PlayButtonWithCover_playButton__rV9pQ"
PAUSE_SVG_ICON = (
    "svg.BaseSonataControlsDesktop_playButtonIcon__TlFqv "
    "use[xlink\\:href='/icons/sprite.svg#pause_filled_l']"
)
PLAY_SVG_ICON = (
    "svg.BaseSonataControlsDesktop_playButtonIcon__TlFqv "
    "use[xlink\\:href='/icons/sprite.svg#play_filled_l']"
)

MUTE_BUTTON = "button.ChangeVolume_button__4HLEr[data-test-id='CHANGE_VOLUME_BUTTON']"
VOLUME_OFF_SVG = "svg.ChangeVolume_icon__5Zv2a use[xlink\\:href='/icons/sprite.svg#volumeOff_xs']"
VOLUME_ON_SVG = "svg.ChangeVolume_icon__5Zv2a use[xlink\\:href='/icons/sprite.svg#volume_xs']"

COVER_IMAGE = "img.PlayerBarDesktopWithBackgroundProgressBar_cover__MKmEt"
TRACK_TITLE = "[data-test-id='TRACK_TITLE'] .Meta_title__GGBnH"
ARTIST_NAME = "[data-test-id='SEPARATED_ARTIST_TITLE'] .Meta_artistCaption__JESZi"

CURRENT_TIME = "[data-test-id='TIMECODE_TIME_START']"
TOTAL_TIME = "[data-test-id='TIMECODE_TIME_END']"
PROGRESS_SLIDER = "[data-test-id='TIMECODE_SLIDER']"

# data-test-id values of player bar buttons
PREVIOUS_TRACK_BUTTON = "PREVIOUS_TRACK_BUTTON"
NEXT_TRACK_BUTTON = "NEXT_TRACK_BUTTON"
LIKE_BUTTON = "LIKE_BUTTON"
DISLIKE_BUTTON = "DISLIKE_BUTTON"

SVG_LIKED = "liked_xs"
SVG_VOLUME_OFF = "volumeOff_xs"
ARIA_LABEL_MUTED = "Включить звук"
