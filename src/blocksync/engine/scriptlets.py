"""
Scriptlet injection.

Built-in implementations of common uBlock Origin scriptlets, plus templates
registered at runtime from a scriptlet resources bundle.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from typing import TYPE_CHECKING, Any

from .domains import domain_matches, hostname_variants

if TYPE_CHECKING:
    from .parser import ScriptletFilter

logger = logging.getLogger(__name__)

# Prepended to every built-in; maps "a.b.c" to [owner, "c"], creating a and b
_RESOLVE_OWNER_JS = """
function resolveOwner(chain) {
    var path = String(chain).split('.');
    var key = path.pop();
    var target = window;
    path.forEach(function(part) {
        if (target[part] === undefined || target[part] === null) {
            target[part] = {};
        }
        target = target[part];
    });
    return [target, key];
}
"""

_THROW_JS = "function() { throw new ReferenceError(chain + ' is blocked'); }"


def _property_trap(getter: str, setter: str) -> str:
    return (
        """
function(chain) {
    if (!chain) return;
    var resolved = resolveOwner(chain);
    Object.defineProperty(resolved[0], resolved[1], {
        configurable: false,
        get: GETTER,
        set: SETTER
    });
}
""".replace("GETTER", getter).replace("SETTER", setter)
    )


def _call_filter(global_name: str, blocked_result: str) -> str:
    """Wrap ``window[global_name]`` so calls whose first argument contains the needle are dropped."""
    return (
        """
function(needle) {
    if (!needle) return;
    var original = window.NAME;
    window.NAME = function(first) {
        if (String(first).indexOf(needle) !== -1) {
            return RESULT;
        }
        return original.apply(this, arguments);
    };
}
""".replace("NAME", global_name).replace("RESULT", blocked_result)
    )


# Function expressions called with the filter's arguments
SCRIPTLETS = {
    "abort-on-property-read": _property_trap(_THROW_JS, "function() {}"),
    "abort-on-property-write": _property_trap("function() { return undefined; }", _THROW_JS),
    "set-constant": """
function(chain, raw) {
    if (!chain) return;
    var constants = {
        'undefined': undefined,
        'null': null,
        'true': true,
        'false': false,
        '': '',
        'noopFunc': function() {},
        'trueFunc': function() { return true; },
        'falseFunc': function() { return false; }
    };
    var value;
    if (Object.prototype.hasOwnProperty.call(constants, raw)) {
        value = constants[raw];
    } else {
        value = /^-?\\d+$/.test(raw) ? parseInt(raw, 10) : raw;
    }
    var resolved = resolveOwner(chain);
    try {
        Object.defineProperty(resolved[0], resolved[1], {
            get: function() { return value; },
            set: function() {}
        });
    } catch (e) {
        resolved[0][resolved[1]] = value;
    }
}
""",
    "no-setTimeout-if": _call_filter("setTimeout", "0"),
    "noeval-if": _call_filter("eval", "undefined"),
}

# Aliases for scriptlet names
SCRIPTLET_ALIASES = {
    "aopr": "abort-on-property-read",
    "aopw": "abort-on-property-write",
    "set": "set-constant",
    "nostif": "no-setTimeout-if",
    "nano-setTimeout-booster": "no-setTimeout-if",
}

_TEMPLATE_ARG = re.compile(r"\{\{(\d+)\}\}")


def _js_string(value: str) -> str:
    return json.dumps(value)


def _decode_resource(entry: Any) -> tuple[list[str], str] | None:
    """Return (names, javascript) for a resource entry, or None if not a script."""
    if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
        return None

    kind = entry.get("kind")
    mime = kind.get("mime") if isinstance(kind, dict) else None
    if kind != "template" and mime not in ("application/javascript", "text/javascript"):
        return None

    try:
        content = base64.b64decode(entry.get("content", ""), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, TypeError) as e:
        logger.debug("Skipping resource %s: %s", entry["name"], e)
        return None

    names = [entry["name"]]
    aliases = entry.get("aliases") or []
    names.extend(alias for alias in aliases if isinstance(alias, str))
    return names, content


class ScriptletHandler:
    """Resolve scriptlet filters for a page into injectable JavaScript."""

    def __init__(self) -> None:
        # Domain-specific scriptlets: domain -> list of filters
        self._domain_scriptlets: dict[str, list[ScriptletFilter]] = {}
        # Templates loaded from a resources bundle, by name and alias
        self._templates: dict[str, str] = {}

    def add_filters(self, filters: list[ScriptletFilter]) -> None:
        """Add scriptlet filters."""
        for f in filters:
            for domain in f.domains:
                self._domain_scriptlets.setdefault(domain, []).append(f)

    def add_resources(self, resources: list[Any]) -> int:
        """Register scriptlet templates from a decoded resources bundle.

        Entries that are not JavaScript (images, redirect stubs) are skipped.

        Returns:
            Number of templates registered.
        """
        added = 0
        for entry in resources:
            decoded = _decode_resource(entry)
            if decoded is None:
                continue
            names, content = decoded
            for name in names:
                # Bundles name scriptlets "foo.js"; filters use "foo"
                self._templates[name] = content
                self._templates[name.removesuffix(".js")] = content
            added += 1

        logger.debug("Registered %d scriptlet resources", added)
        return added

    def _render(self, f: ScriptletFilter) -> str | None:
        name = SCRIPTLET_ALIASES.get(f.scriptlet_name, f.scriptlet_name)

        template = self._templates.get(f.scriptlet_name) or self._templates.get(name)
        if template is not None:
            # Substitute {{1}}..{{n}}; missing args become empty strings
            def substitute(match: re.Match[str]) -> str:
                index = int(match.group(1)) - 1
                return f.args[index] if 0 <= index < len(f.args) else ""

            return _TEMPLATE_ARG.sub(substitute, template)

        impl = SCRIPTLETS.get(name)
        if impl is None:
            logger.debug("Unknown scriptlet: %s", f.scriptlet_name)
            return None

        args_str = ", ".join(_js_string(arg) for arg in f.args)
        return f"(function() {{\n{_RESOLVE_OWNER_JS.strip()}\n({impl.strip()})({args_str});\n}})();"

    def get_scripts_for_domain(self, hostname: str) -> list[str]:
        """Get JavaScript code to inject for a domain.

        Args:
            hostname: The hostname to get scripts for.

        Returns:
            List of JavaScript code strings to inject.
        """
        scripts: list[str] = []
        seen: set[int] = set()
        hostname = hostname.lower()

        for variant in hostname_variants(hostname):
            for f in self._domain_scriptlets.get(variant, []):
                if id(f) in seen:
                    continue
                seen.add(id(f))
                if not domain_matches(hostname, f.domains, f.excluded_domains, require_inclusion=True):
                    continue
                script = self._render(f)
                if script is not None:
                    scripts.append(script)

        return scripts
