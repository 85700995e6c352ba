"""In-page scripts for the Perplexity surface.

Scripts only gather raw observations (text, element presence, candidate
blocks) or perform a click/fill. Classification and filtering live in
monitor.py so they can be tested without a browser.

Selectors track a third-party UI and will drift; keep them here and nowhere else.
"""

from __future__ import annotations

import json

PROSE_SELECTOR = '[class*="prose"]'
SPINNER_SELECTOR = '[class*="animate-spin"], [class*="animate-pulse"]'
CHROME_REGIONS = 'nav, aside, header, footer, form, [role="navigation"]'
PROFILE_SELECTOR = '[aria-label*="profile"], [aria-label*="account"], [aria-label*="user"], img[alt*="avatar"]'

INPUT_SELECTORS = [
    '[contenteditable="true"]',
    'textarea[placeholder*="Ask"]',
    'textarea[placeholder*="Search"]',
    "textarea",
    'input[type="text"]',
]

# Labels of controls beside the prompt box that must never be mistaken for "submit".
NON_SUBMIT_LABELS = ["search", "deep research", "create files", "attach", "voice", "dictation"]

_SET_VALUE_JS = """
function __cometSetValue(el, next) {
    try {
        const proto = Object.getPrototypeOf(el);
        const desc = proto ? Object.getOwnPropertyDescriptor(proto, 'value') : null;
        if (desc && typeof desc.set === 'function') {
            desc.set.call(el, String(next));
        } else {
            el.value = String(next);
        }
    } catch (_e) {
        el.value = String(next);
    }
    el.dispatchEvent(new Event('input', {bubbles: true}));
}
"""

SCROLL_TO_BOTTOM = """
(() => {
    const main = document.querySelector('main') || document.body;
    main.scrollTo(0, main.scrollHeight);
    return true;
})()
"""

PAGE_SIGNALS = f"""
(() => {{
    let hasStopControl = false;
    for (const btn of document.querySelectorAll('button')) {{
        const label = (btn.getAttribute('aria-label') || '').toLowerCase();
        if ((btn.querySelector('rect') || label.includes('stop')) && btn.offsetParent !== null && !btn.disabled) {{
            hasStopControl = true;
            break;
        }}
    }}
    return {{
        text: document.body ? (document.body.innerText || '') : '',
        hasStopControl,
        hasSpinner: document.querySelector({json.dumps(SPINNER_SELECTOR)}) !== null,
        hasProse: [...document.querySelectorAll({json.dumps(PROSE_SELECTOR)})].some(
            el => (el.innerText || '').trim().length > 0
        ),
    }};
}})()
"""

RESPONSE_BLOCKS = f"""
(() => {{
    const root = document.querySelector('main') || document.body;
    return [...root.querySelectorAll({json.dumps(PROSE_SELECTOR)})].map(el => ({{
        text: (el.innerText || '').trim(),
        inChrome: el.closest({json.dumps(CHROME_REGIONS)}) !== null,
    }}));
}})()
"""

RESPONSE_MARKER = f"""
(() => {{
    const els = document.querySelectorAll({json.dumps(PROSE_SELECTOR)});
    const last = els[els.length - 1];
    return {{count: els.length, lastText: last ? (last.innerText || '').substring(0, 100) : ''}};
}})()
"""

STOP_AGENT = """
(() => {
    for (const btn of document.querySelectorAll('button[aria-label*="Stop"], button[aria-label*="Cancel"]')) {
        btn.click();
        return true;
    }
    for (const btn of document.querySelectorAll('button')) {
        if (btn.querySelector('svg rect')) {
            btn.click();
            return true;
        }
    }
    return false;
})()
"""

LOGIN_SIGNALS = f"""
(() => {{
    const body = document.body;
    const html = body ? (body.innerHTML || '') : '';
    return {{
        text: body ? (body.innerText || '') : '',
        hasProfile: document.querySelector({json.dumps(PROFILE_SELECTOR)}) !== null,
        hasLoginButton: html.includes('Sign in') || html.includes('Log in'),
    }};
}})()
"""

CURRENT_URL = "window.location.href"

# ---------------------------------------------------------------- prompt input

FOCUS_AND_CLEAR_INPUT = """
(() => {
    const el = document.querySelector('[contenteditable="true"]');
    if (el) {
        el.focus();
        el.innerHTML = '';
        return 'contenteditable';
    }
    const ta = document.querySelector('textarea');
    if (ta) {
        ta.focus();
        ta.value = '';
        return 'textarea';
    }
    const inp = document.querySelector('input[type="text"]');
    if (inp) {
        inp.focus();
        inp.value = '';
        return 'input';
    }
    return null;
})()
"""

INPUT_HAS_TEXT = """
(() => {
    const el = document.querySelector('[contenteditable="true"]');
    if (el && el.innerText.trim().length > 0) return true;
    const ta = document.querySelector('textarea');
    if (ta && ta.value.trim().length > 0) return true;
    const inp = document.querySelector('input[type="text"]');
    return !!(inp && inp.value.trim().length > 0);
})()
"""

FOCUS_INPUT = """
(() => {
    const el = document.querySelector('[contenteditable="true"]') || document.querySelector('textarea');
    if (el) el.focus();
    return !!el;
})()
"""

SUBMISSION_STARTED = """
(() => {
    const el = document.querySelector('[contenteditable="true"]');
    if (el && el.innerText.trim().length < 5) return true;
    return document.querySelector('[class*="animate"]') !== null;
})()
"""

SUBMISSION_CONFIRMED = f"""
(() => {{
    const el = document.querySelector('[contenteditable="true"]');
    if (el && el.innerText.trim().length < 5) return true;
    const busy = document.querySelector('[class*="animate"]') !== null;
    return busy || document.querySelectorAll({json.dumps(PROSE_SELECTOR)}).length > 0;
}})()
"""

CLICK_SUBMIT = f"""
(() => {{
    for (const sel of ['button[aria-label*="Submit"]', 'button[aria-label*="Send"]',
                       'button[aria-label*="Ask"]', 'button[type="submit"]']) {{
        const btn = document.querySelector(sel);
        if (btn && !btn.disabled && btn.offsetParent !== null) {{
            btn.click();
            return sel;
        }}
    }}
    const skip = {json.dumps(NON_SUBMIT_LABELS)};
    const input = document.querySelector('[contenteditable="true"]') || document.querySelector('textarea');
    if (!input) return null;
    const inputRect = input.getBoundingClientRect();
    const candidates = [];
    let parent = input.parentElement;
    for (let depth = 0; depth < 4 && parent; depth++) {{
        for (const btn of parent.querySelectorAll('button:not([disabled])')) {{
            const label = (btn.getAttribute('aria-label') || '').toLowerCase();
            if (skip.some(s => label.includes(s))) continue;
            const rect = btn.getBoundingClientRect();
            if (btn.querySelector('svg') && btn.offsetParent !== null && rect.left > inputRect.left && rect.width > 0) {{
                candidates.push({{btn, right: rect.right}});
            }}
        }}
        parent = parent.parentElement;
    }}
    if (!candidates.length) return null;
    candidates.sort((a, b) => b.right - a.right);
    candidates[0].btn.click();
    return 'svg-button';
}})()
"""

# ---------------------------------------------------------------- modes

CURRENT_MODE = """
(() => {
    for (const mode of ['Search', 'Research', 'Labs', 'Learn']) {
        const btn = document.querySelector('button[aria-label="' + mode + '"]');
        if (btn && btn.getAttribute('data-state') === 'checked') return mode.toLowerCase();
    }
    const trigger = document.querySelector('button[class*="gap"]');
    if (trigger) {
        const text = (trigger.innerText || '').toLowerCase();
        for (const mode of ['research', 'search', 'labs', 'learn']) {
            if (text.includes(mode)) return mode;
        }
    }
    return null;
})()
"""


def click_mode_control(label: str) -> str:
    """Click the wide-layout mode button, else open the narrow-layout dropdown."""
    return f"""
    (() => {{
        const btn = document.querySelector('button[aria-label=' + JSON.stringify({json.dumps(label)}) + ']');
        if (btn) {{
            btn.click();
            return {{success: true, method: 'button'}};
        }}
        for (const b of document.querySelectorAll('button')) {{
            const text = (b.innerText || '').toLowerCase();
            if (['search', 'research', 'labs', 'learn'].some(m => text.includes(m)) && b.querySelector('svg')) {{
                b.click();
                return {{success: true, method: 'dropdown', needsSelect: true}};
            }}
        }}
        return {{success: false, error: 'Mode selector not found'}};
    }})()
    """


def select_mode_option(mode: str) -> str:
    return f"""
    (() => {{
        const wanted = {json.dumps(mode.lower())};
        for (const item of document.querySelectorAll('[role="menuitem"], [role="option"], button')) {{
            if ((item.innerText || '').toLowerCase().includes(wanted)) {{
                item.click();
                return {{success: true}};
            }}
        }}
        return {{success: false, error: 'Mode option not found in dropdown'}};
    }})()
    """


# ---------------------------------------------------------------- library / folders

LIST_FOLDERS = """
(() => {
    const found = [];
    for (const el of document.querySelectorAll('[data-testid*="folder"], [class*="folder"], a[href*="/collection/"]')) {
        const name = (el.textContent || '').trim();
        if (name && name.length < 100) found.push({name, href: el.getAttribute('href') || ''});
    }
    for (const link of document.querySelectorAll('nav a, aside a')) {
        const name = (link.textContent || '').trim();
        const href = link.getAttribute('href') || '';
        if (name && href.includes('/collection/')) found.push({name, href});
    }
    return found;
})()
"""

CLICK_CREATE_FOLDER = """
(() => {
    const buttons = [...document.querySelectorAll('button')];
    for (const btn of buttons) {
        const text = (btn.textContent || '').toLowerCase();
        if (text.includes('new folder') || text.includes('create folder') || text.includes('add folder')) {
            btn.click();
            return {clicked: true};
        }
    }
    for (const btn of buttons) {
        if (btn.querySelector('svg') && (btn.getAttribute('aria-label') || '').toLowerCase().includes('add')) {
            btn.click();
            return {clicked: true};
        }
    }
    return {clicked: false, error: 'Create folder button not found'};
})()
"""

CONFIRM_DIALOG = """
(() => {
    for (const btn of document.querySelectorAll('button')) {
        const text = (btn.textContent || '').toLowerCase();
        if (text.includes('create') || text.includes('save') || text.includes('confirm')) {
            btn.click();
            return true;
        }
    }
    return false;
})()
"""

CLICK_SAVE_THREAD = """
(() => {
    for (const btn of document.querySelectorAll('button')) {
        const label = (btn.getAttribute('aria-label') || '').toLowerCase();
        const text = (btn.textContent || '').toLowerCase();
        if (label.includes('save') || label.includes('bookmark') || label.includes('add to') ||
            text.includes('save') || text.includes('bookmark')) {
            btn.click();
            return {clicked: true};
        }
    }
    return {clicked: false, error: 'Save button not found'};
})()
"""


def fill_folder_name(name: str) -> str:
    return f"""
    (() => {{
        {_SET_VALUE_JS}
        const input = document.querySelector('input[type="text"], input[placeholder*="folder"], input[placeholder*="name"]');
        if (!input) return false;
        input.focus();
        __cometSetValue(input, {json.dumps(name)});
        return true;
    }})()
    """


def pick_folder(name: str) -> str:
    return f"""
    (() => {{
        const wanted = {json.dumps(name)};
        for (const item of document.querySelectorAll('[role="menuitem"], [role="option"], button, a')) {{
            if ((item.textContent || '').includes(wanted)) {{
                item.click();
                return {{selected: true}};
            }}
        }}
        return {{selected: false, error: 'Folder not found in picker'}};
    }})()
    """


def search_library(query: str) -> str:
    return f"""
    (() => {{
        {_SET_VALUE_JS}
        const sel = 'input[type="search"], input[placeholder*="search"], input[placeholder*="Search"]';
        const input = document.querySelector(sel);
        if (!input) return false;
        input.focus();
        __cometSetValue(input, {json.dumps(query)});
        input.dispatchEvent(new KeyboardEvent('keydown', {{key: 'Enter', bubbles: true}}));
        return true;
    }})()
    """


LIBRARY_ITEMS = """
(() => {
    const items = [];
    const titleOf = el => {
        const t = el.querySelector('h2, h3, [class*="title"]');
        return ((t && t.textContent) || '').trim();
    };
    for (const el of document.querySelectorAll('[data-testid*="thread"], [class*="thread"], a[href*="/search/"], a[href*="/thread/"]')) {
        const title = titleOf(el) || (el.textContent || '').substring(0, 100).trim();
        const link = el.getAttribute('href') ? el : el.querySelector('a');
        items.push({title, href: link ? (link.getAttribute('href') || '') : ''});
    }
    for (const card of document.querySelectorAll('[class*="card"], [class*="item"], article')) {
        const link = card.querySelector('a');
        const title = titleOf(card);
        if (title && link) items.push({title, href: link.getAttribute('href') || ''});
    }
    return items;
})()
"""
