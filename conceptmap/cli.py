#!/usr/bin/env python3
"""ConceptMap CLI - drive a running conceptmap server from the shell."""

import argparse
import json
import os
import sys
import urllib.error
import urllib.parse
import urllib.request

API_BASE = os.environ.get("CONCEPTMAP_API", "http://127.0.0.1:8765/api")


def _json_out(data, code=0):
    print(json.dumps(data))
    sys.exit(code)


def _fail(message):
    _json_out({"status": "error", "error": message}, 1)


def _api_request(method, endpoint, data=None):
    """Call the conceptmap API and return the decoded JSON response."""
    request = urllib.request.Request(
        f"{API_BASE}{endpoint}",
        data=None if data is None else json.dumps(data).encode(),
        headers={"Content-Type": "application/json"},
        method=method,
    )
    try:
        with urllib.request.urlopen(request, timeout=30) as response:
            return json.load(response)
    except urllib.error.HTTPError as e:
        text = e.read().decode()
        try:
            detail = json.loads(text).get("detail", text)
        except json.JSONDecodeError:
            detail = text
        _fail(f"API error ({e.code}): {detail}")
    except urllib.error.URLError as e:
        _fail(f"Cannot reach {API_BASE}: {e.reason}. Start it with `conceptmap serve`.")


# ── Service ──────────────────────────────────────────────────────────────────

def cmd_serve(args):
    from .server import main as serve
    serve()


# ── Documents ────────────────────────────────────────────────────────────────

def cmd_state(args):
    _json_out(_api_request("GET", "/state"))


def cmd_list(args):
    _json_out(_api_request("GET", "/documents"))


def cmd_new(args):
    _json_out(_api_request("POST", "/documents", data={"name": args.name}))


def cmd_open(args):
    _json_out(_api_request("POST", f"/documents/{urllib.parse.quote(args.document_id)}/open"))


def cmd_delete(args):
    _json_out(_api_request("DELETE", f"/documents/{urllib.parse.quote(args.document_id)}"))


def cmd_rename(args):
    _json_out(_api_request("PATCH", "/document", data={"name": args.name}))


def cmd_save(args):
    _json_out(_api_request("POST", "/document/save"))


def cmd_export(args):
    if args.path:
        _json_out(_api_request("POST", "/document/export", data={"path": os.path.abspath(args.path)}))
    _json_out(_api_request("GET", "/document/export"))


# ── Nodes & edges ────────────────────────────────────────────────────────────

def cmd_add_node(args):
    _json_out(_api_request("POST", "/nodes", data={"x": args.x, "y": args.y}))


def cmd_add_child(args):
    _json_out(_api_request("POST", f"/nodes/{urllib.parse.quote(args.node_id)}/child"))


def cmd_add_sibling(args):
    _json_out(_api_request("POST", f"/nodes/{urllib.parse.quote(args.node_id)}/sibling"))


def cmd_label(args):
    _json_out(_api_request("PATCH", f"/nodes/{urllib.parse.quote(args.node_id)}/label", data={"label": args.label}))


def cmd_style(args):
    style = {
        "bgColor": args.bg_color,
        "borderColor": args.border_color,
        "borderWidth": args.border_width,
        "icon": args.icon,
    }
    style = {k: v for k, v in style.items() if v is not None}
    _json_out(_api_request("PATCH", f"/nodes/{urllib.parse.quote(args.node_id)}/style", data=style))


def cmd_collapse(args):
    _json_out(_api_request("POST", f"/nodes/{urllib.parse.quote(args.node_id)}/collapse"))


def cmd_connect(args):
    _json_out(_api_request("POST", "/edges", data={"source": args.source, "target": args.target}))


def cmd_remove_selection(args):
    _json_out(_api_request("DELETE", "/selection"))


# ── History ──────────────────────────────────────────────────────────────────

def cmd_undo(args):
    _json_out(_api_request("POST", "/undo"))


def cmd_redo(args):
    _json_out(_api_request("POST", "/redo"))


def build_parser():
    parser = argparse.ArgumentParser(prog="conceptmap", description="ConceptMap command line client")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("serve", help="Run the API server")
    p.set_defaults(func=cmd_serve)

    p = sub.add_parser("state", help="Show the open document")
    p.set_defaults(func=cmd_state)

    p = sub.add_parser("list", help="List stored documents")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("new", help="Start a new document")
    p.add_argument("--name")
    p.set_defaults(func=cmd_new)

    p = sub.add_parser("open", help="Open a stored document")
    p.add_argument("document_id")
    p.set_defaults(func=cmd_open)

    p = sub.add_parser("delete", help="Delete a stored document")
    p.add_argument("document_id")
    p.set_defaults(func=cmd_delete)

    p = sub.add_parser("rename", help="Rename the open document")
    p.add_argument("name")
    p.set_defaults(func=cmd_rename)

    p = sub.add_parser("save", help="Save the open document")
    p.set_defaults(func=cmd_save)

    p = sub.add_parser("export", help="Print or write the document JSON")
    p.add_argument("--path")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("add-node", help="Add a node at a position")
    p.add_argument("--x", type=float, default=0)
    p.add_argument("--y", type=float, default=0)
    p.set_defaults(func=cmd_add_node)

    p = sub.add_parser("add-child", help="Add a child node")
    p.add_argument("node_id")
    p.set_defaults(func=cmd_add_child)

    p = sub.add_parser("add-sibling", help="Add a sibling node")
    p.add_argument("node_id")
    p.set_defaults(func=cmd_add_sibling)

    p = sub.add_parser("label", help="Change a node label")
    p.add_argument("node_id")
    p.add_argument("label")
    p.set_defaults(func=cmd_label)

    p = sub.add_parser("style", help="Change a node style")
    p.add_argument("node_id")
    p.add_argument("--bg-color")
    p.add_argument("--border-color")
    p.add_argument("--border-width", type=int)
    p.add_argument("--icon")
    p.set_defaults(func=cmd_style)

    p = sub.add_parser("collapse", help="Toggle a node's collapsed state")
    p.add_argument("node_id")
    p.set_defaults(func=cmd_collapse)

    p = sub.add_parser("connect", help="Connect two nodes")
    p.add_argument("source")
    p.add_argument("target")
    p.set_defaults(func=cmd_connect)

    p = sub.add_parser("remove-selection", help="Delete selected nodes and edges")
    p.set_defaults(func=cmd_remove_selection)

    p = sub.add_parser("undo", help="Undo the last change")
    p.set_defaults(func=cmd_undo)

    p = sub.add_parser("redo", help="Redo the last undone change")
    p.set_defaults(func=cmd_redo)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
