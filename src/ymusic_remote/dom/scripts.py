"""Page scripts - build the Commands evaluated against the player bar."""

from __future__ import annotations

import json

from ymusic_remote.cdp.commands import Command
from ymusic_remote.dom import selectors as sel


def _js(value: str) -> str:
    """Quote a Python string as a JavaScript string literal."""
    return json.dumps(value)


def _player_bar_lookup(on_missing: str) -> str:
    return f"""
        let playerBar = document.querySelector({_js(sel.PLAYER_BAR_PRIMARY)})
            || document.querySelector({_js(sel.PLAYER_BAR_FALLBACK)});
        if (!playerBar) return {on_missing};
    """


def _wrap(body: str, error_result: str) -> str:
    return f"""
(function() {{
    try {{
        {body}
    }} catch (err) {{
        return {error_result};
    }}
}})()
"""


_ACTION_ERROR = "{ success: false, message: 'Error: ' + err.message }"


def toggle_playback() -> Command:
    """Click pause if playing, play if paused; fall back to the middle control."""
    body = f"""
        const pauseButton = document.querySelector({_js(sel.PAUSE_BUTTON)});
        if (pauseButton) {{
            pauseButton.click();
            return {{ success: true, message: 'Track paused' }};
        }}

        const playButton = document.querySelector({_js(sel.PLAY_BUTTON)});
        if (playButton && !playButton.classList.contains({_js(sel.PLAY_BUTTON_WITH_COVER_CLASS)})) {{
            playButton.click();
            return {{ success: true, message: 'Track playing' }};
        }}

        const pauseSvg = document.querySelector({_js(sel.PAUSE_SVG_ICON)});
        const pauseBySvg = pauseSvg && pauseSvg.closest('button');
        if (pauseBySvg) {{
            pauseBySvg.click();
            return {{ success: true, message: 'Track paused' }};
        }}

        const playSvg = document.querySelector({_js(sel.PLAY_SVG_ICON)});
        const playBySvg = playSvg && playSvg.closest('button');
        if (playBySvg) {{
            playBySvg.click();
            return {{ success: true, message: 'Track playing' }};
        }}

        const sonataButtons = document.querySelectorAll({_js(sel.SONATA_BUTTONS)});
        if (sonataButtons.length >= 3) {{
            sonataButtons[1].click();
            return {{ success: true, message: 'Track toggled' }};
        }}

        return {{ success: false, message: 'Play/pause button not found' }};
    """
    return Command(_wrap(body, _ACTION_ERROR), await_promise=True, name="toggle_playback")


def click_button(test_id: str) -> Command:
    """Click a player bar button by its data-test-id.

    Like and dislike fall back to the last and first buttons of the sonata
    section when the test id is missing.
    """
    fallback = ""
    if test_id in (sel.LIKE_BUTTON, sel.DISLIKE_BUTTON):
        position = "button:last-of-type" if test_id == sel.LIKE_BUTTON else "button:first-of-type"
        fallback = f"""
        if (!button) {{
            const sonataSection = playerBar.querySelector({_js(sel.SONATA_SECTION)});
            if (sonataSection) button = sonataSection.querySelector({_js(position)});
        }}
        """
    body = f"""
        {_player_bar_lookup("{ success: false, message: 'Player bar not found' }")}
        let button = playerBar.querySelector({_js(f"[data-test-id='{test_id}']")});
        {fallback}
        if (button) {{
            button.click();
            return {{ success: true, message: {_js(test_id + " clicked")} }};
        }}
        return {{ success: false, message: 'Button not found' }};
    """
    return Command(_wrap(body, _ACTION_ERROR), await_promise=True, name=f"click_{test_id.lower()}")


def toggle_mute() -> Command:
    body = f"""
        const muteButton = document.querySelector({_js(sel.MUTE_BUTTON)});
        if (muteButton) {{
            const isMuted = muteButton.getAttribute('aria-label') === {_js(sel.ARIA_LABEL_MUTED)};
            muteButton.click();
            return {{ success: true, message: isMuted ? 'Sound on' : 'Sound off' }};
        }}

        const offSvg = document.querySelector({_js(sel.VOLUME_OFF_SVG)});
        const unmuteBySvg = offSvg && offSvg.closest('button');
        if (unmuteBySvg) {{
            unmuteBySvg.click();
            return {{ success: true, message: 'Sound on' }};
        }}

        const onSvg = document.querySelector({_js(sel.VOLUME_ON_SVG)});
        const muteBySvg = onSvg && onSvg.closest('button');
        if (muteBySvg) {{
            muteBySvg.click();
            return {{ success: true, message: 'Sound off' }};
        }}

        return {{ success: false, message: 'Mute button not found' }};
    """
    return Command(_wrap(body, _ACTION_ERROR), await_promise=True, name="toggle_mute")


def is_playing() -> Command:
    body = f"""
        if (document.querySelector({_js(sel.PAUSE_BUTTON)})) return {{ isPlaying: true }};
        if (document.querySelector({_js(sel.PLAY_BUTTON)})) return {{ isPlaying: false }};
        if (document.querySelector({_js(sel.PAUSE_SVG_ICON)})) return {{ isPlaying: true }};
        return {{ isPlaying: false }};
    """
    return Command(_wrap(body, "{ isPlaying: false }"), name="is_playing")


def is_liked() -> Command:
    body = f"""
        {_player_bar_lookup("{ isLiked: false, debug: 'no-playerbar' }")}
        let method = 'primary-method';
        let likeButton = playerBar.querySelector({_js(f"[data-test-id='{sel.LIKE_BUTTON}']")});
        if (!likeButton) {{
            method = 'fallback-method';
            const sonataSection = playerBar.querySelector({_js(sel.SONATA_SECTION)});
            likeButton = sonataSection && sonataSection.querySelector('button:last-of-type');
        }}
        if (!likeButton) return {{ isLiked: false, debug: 'no-button' }};

        const pressed = likeButton.getAttribute('aria-pressed') === 'true';
        const use = likeButton.querySelector('svg use');
        const href = use ? use.getAttribute('xlink:href') : null;
        const bySvg = !!href && href.includes({_js(sel.SVG_LIKED)});
        return {{ isLiked: pressed || bySvg, debug: method }};
    """
    return Command(_wrap(body, "{ isLiked: false, debug: 'error' }"), name="is_liked")


def is_muted() -> Command:
    body = f"""
        const muteButton = document.querySelector({_js(sel.MUTE_BUTTON)});
        if (muteButton) {{
            const use = muteButton.querySelector('svg use');
            const href = use ? use.getAttribute('xlink:href') : null;
            if (href) {{
                return {{ isMuted: href.includes({_js(sel.SVG_VOLUME_OFF)}), debug: 'svg-href-method' }};
            }}
        }}
        if (document.querySelector({_js(sel.VOLUME_OFF_SVG)})) {{
            return {{ isMuted: true, debug: 'svg-direct-method' }};
        }}
        return {{ isMuted: false, debug: 'no-button' }};
    """
    return Command(_wrap(body, "{ isMuted: false, debug: 'error' }"), name="is_muted")


def ui_ready() -> Command:
    body = f"""
        const playerBar = document.querySelector({_js(sel.PLAYER_BAR_PRIMARY)})
            || document.querySelector({_js(sel.PLAYER_BAR_FALLBACK)});
        return {{ ready: !!playerBar }};
    """
    return Command(_wrap(body, "{ ready: false }"), name="ui_ready")


def track_info() -> Command:
    """Read cover, title and artist from the player bar, with diagnostics on a miss."""
    not_found = (
        "{ success: false, message: 'Player bar not found', diagnostics: "
        "{ playerBarFound: false, coverFound: false, titleFound: false, artistFound: false } }"
    )
    body = f"""
        {_player_bar_lookup(not_found)}
        const cover = playerBar.querySelector({_js(sel.COVER_IMAGE)});
        const title = playerBar.querySelector({_js(sel.TRACK_TITLE)});
        const artist = playerBar.querySelector({_js(sel.ARTIST_NAME)});

        if (cover && title && artist) {{
            return {{
                success: true,
                coverUrl: cover.src,
                title: title.textContent,
                artist: artist.textContent
            }};
        }}

        const anyImg = playerBar.querySelector('img');
        return {{
            success: false,
            message: 'Track info incomplete',
            diagnostics: {{
                playerBarFound: true,
                coverFound: !!cover,
                titleFound: !!title,
                artistFound: !!artist,
                coverClasses: cover ? cover.className : (anyImg ? anyImg.className : 'no img found'),
                titleClasses: title ? title.className : 'not found',
                artistClasses: artist ? artist.className : 'not found'
            }}
        }};
    """
    error = "{ success: false, message: 'Error: ' + err.message }"
    return Command(_wrap(body, error), await_promise=True, name="track_info")


def track_time() -> Command:
    body = f"""
        {_player_bar_lookup("{ success: false, message: 'Player bar not found' }")}
        const current = playerBar.querySelector({_js(sel.CURRENT_TIME)});
        const total = playerBar.querySelector({_js(sel.TOTAL_TIME)});
        const slider = playerBar.querySelector({_js(sel.PROGRESS_SLIDER)});
        if (!(current && total && slider)) {{
            return {{ success: false, message: 'Time elements not found' }};
        }}

        const value = parseFloat(slider.value) || 0;
        const max = parseFloat(slider.max) || 100;
        return {{
            success: true,
            currentTime: current.textContent.trim(),
            totalTime: total.textContent.trim(),
            progressValue: value,
            progressMax: max,
            progressPercent: (value / max) * 100
        }};
    """
    error = "{ success: false, message: 'Error: ' + err.message }"
    return Command(_wrap(body, error), await_promise=True, name="track_time")
