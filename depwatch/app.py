import logging
from typing import Any, List

from rich.markup import escape
from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Button, Footer, Header, Label, LoadingIndicator, Markdown, Tree

from depwatch.__version__ import __version__
from depwatch.core.model import ROOT, AuditResult, DependencyNode
from depwatch.core.scanner import audit_tree, mark_tree
from depwatch.core.watchlist import AuditConfig
from depwatch.managers.base import PackageManager


class OccurrenceScreen(ModalScreen):
    """Modal showing where a watched package sits in the tree."""

    DEFAULT_CSS = """
    OccurrenceScreen {
        align: center middle;
        background: rgba(0, 0, 0, 0.8);
    }
    #dialog {
        padding: 0 1;
        width: 85%;
        height: 85%;
        border: heavy $warning;
        background: $surface;
        layout: vertical;
    }
    #dialog.bad { border: heavy $error; }
    #title {
        text-align: center;
        text-style: bold;
        background: $warning;
        color: black;
        width: 100%;
        padding: 1;
    }
    #dialog.bad #title { background: $error; color: white; }
    #content-scroll {
        height: 1fr;
        margin: 1 0;
        overflow-y: auto;
        scrollbar-gutter: stable;
    }
    #close-btn {
        width: 100%;
        dock: bottom;
    }
    """

    def __init__(self, node: DependencyNode, chain: List[str], safe_version: str = "") -> None:
        super().__init__()
        self.node = node
        self.chain = chain
        self.safe_version = safe_version

    def compose(self) -> ComposeResult:
        marker = "(X)" if self.node.compromised else "(!)"
        yield Vertical(
            Label(f"{marker} {escape(self.node.token)}", id="title"),
            VerticalScroll(
                Markdown(self._build_report()),
                id="content-scroll"
            ),
            Button("Close (Esc)", variant="error", id="close-btn"),
            id="dialog",
            classes="bad" if self.node.compromised else "",
        )

    def _build_report(self) -> str:
        md_output = []
        if self.node.compromised:
            md_output.append(f"# Known-bad version {self.node.version}\n")
            md_output.append("This exact version was published by a compromised account. "
                             "Run `depwatch fix` to pin safe versions and reinstall.\n")
        else:
            md_output.append("# Watched package\n")
            md_output.append("This version is not on the known-bad list.\n")

        if self.safe_version:
            md_output.append(f"**Safe override:** `{self.safe_version}`\n")

        md_output.append("### Parent chain\n")
        for depth, token in enumerate(self.chain):
            md_output.append(f"{'  ' * depth}- `{token}`")

        return "\n".join(md_output)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss()

    def key_escape(self) -> None:
        self.dismiss()


class DepwatchApp(App):
    TITLE = "depwatch"
    SUB_TITLE = f"v{__version__}"

    DEFAULT_CSS = """
    Screen { layout: vertical; }

    #info-bar {
        height: 3;
        dock: top;
        background: $surface;
        border-bottom: solid $primary;
        align: left middle;
        padding: 0 1;
    }

    .info-label {
        width: auto;
        height: 1;
        padding: 0 2;
        color: $text;
    }

    #tree-container {
        height: 1fr;
        border: none;
        margin: 0 1;
    }
    Tree { padding: 1; background: $surface; }

    #loading-container { height: 100%; align: center middle; }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("j", "cursor_down", "Down", show=False),
        Binding("k", "cursor_up", "Up", show=False),
        Binding("l", "expand_node", "Expand"),
        Binding("h", "collapse_node", "Collapse"),
        Binding("w", "toggle_filter", "Watched Only"),
    ]

    show_only_watched: bool = False
    occurrences: int = 0
    bad_count: int = 0
    status: str = "..."

    def __init__(self, project_dir: str, manager: PackageManager, config: AuditConfig) -> None:
        super().__init__()
        self.project_dir = project_dir
        self.manager = manager
        self.config = config

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)

        with Horizontal(id="info-bar"):
            yield Label(f"[b]Context:[/b] [cyan]{self.manager.name}[/]", id="lbl-context", classes="info-label")
            yield Label("[b]Watched:[/b] [yellow]0[/]", id="lbl-watched", classes="info-label")
            yield Label("[b]Known-bad:[/b] [red]0[/]", id="lbl-bad", classes="info-label")
            yield Label("[b]Status:[/b] ...", id="lbl-status", classes="info-label")

        with Container(id="main-area"):
            with Container(id="loading-container"):
                yield LoadingIndicator()
                yield Label("Resolving dependency tree...", id="status-label")

            with Container(id="tree-container"):
                yield Tree("Root", id="dep-tree")

        yield Footer()

    def on_mount(self) -> None:
        self.query_one("#tree-container").display = False
        self.scan_project()

    # --- ACTIONS ---

    def action_cursor_down(self) -> None:
        self.query_one("#dep-tree").action_cursor_down()

    def action_cursor_up(self) -> None:
        self.query_one("#dep-tree").action_cursor_up()

    def action_expand_node(self) -> None:
        tree = self.query_one("#dep-tree")
        if tree.cursor_node:
            tree.cursor_node.expand()

    def action_collapse_node(self) -> None:
        tree = self.query_one("#dep-tree")
        node = tree.cursor_node
        if node:
            if node.is_expanded:
                node.collapse()
            elif node.parent:
                tree.select_node(node.parent)
                node.parent.collapse()

    def on_tree_node_selected(self, event: Tree.NodeSelected) -> None:
        node_data = event.node.data
        # the root is the project itself
        if not node_data or event.node.parent is None:
            return

        if node_data.watched:
            safe_version = self.config.safe_overrides.get(node_data.name, "")
            self.push_screen(OccurrenceScreen(node_data, self._chain_for(event.node), safe_version))
        else:
            self.notify("This package is not on the watchlist.", severity="information")

    def action_toggle_filter(self) -> None:
        self.show_only_watched = not self.show_only_watched

        status = "enabled" if self.show_only_watched else "disabled"
        severity = "warning" if self.show_only_watched else "information"
        msg = "Showing watched packages only." if self.show_only_watched else "Showing all packages."

        self.notify(f"Filter {status}: {msg}", severity=severity)

        root_data = self.query_one("#dep-tree").root.data
        if root_data:
            self.render_tree(root_data)

    # --- LOGIC ---

    @staticmethod
    def _chain_for(tree_node: Any) -> List[str]:
        tokens = []
        current = tree_node
        while current is not None and current.parent is not None:
            tokens.append(current.data.token)
            current = current.parent
        return [ROOT] + list(reversed(tokens))

    def _has_watched_descendant(self, node: DependencyNode) -> bool:
        if node.watched:
            return True
        for child in node.children:
            if self._has_watched_descendant(child):
                return True
        return False

    def update_dashboard_ui(self) -> None:
        colour = "red" if self.status == "Infected" else "green"
        self.query_one("#lbl-watched", Label).update(f"[b]Watched:[/b] [yellow]{self.occurrences}[/]")
        self.query_one("#lbl-bad", Label).update(f"[b]Known-bad:[/b] [red]{self.bad_count}[/]")
        self.query_one("#lbl-status", Label).update(f"[b]Status:[/b] [{colour}]{self.status}[/]")

    def show_error(self, message: str) -> None:
        self.query_one("#status-label").update(f"[bold red]Fatal Error:[/]\n{escape(message)}")
        self.query_one("LoadingIndicator").display = False

    def show_result(self, root_node: DependencyNode, result: AuditResult) -> None:
        self.occurrences = sum(len(occs) for occs in result.results.values())
        self.bad_count = len(result.flagged)
        self.status = result.status
        self.update_dashboard_ui()
        self.render_tree(root_node)

    @work(thread=True, exclusive=True)
    def scan_project(self) -> None:
        try:
            logging.info("Worker started.")
            root_node = self.manager.resolve_tree(
                self.project_dir, self.config.watchlist, timeout=self.config.resolver_timeout
            )
            result = audit_tree(root_node, self.config)
            mark_tree(root_node, self.config)
            self.call_from_thread(self.show_result, root_node, result)

        except Exception as e:
            logging.exception("Fatal error in worker:")
            self.call_from_thread(self.show_error, str(e))

    def render_tree(self, root_node: DependencyNode) -> None:
        tree = self.query_one("#dep-tree")
        tree.clear()
        tree.root.data = root_node
        tree.root.label = f"📂 {escape(root_node.token)}"
        tree.root.expand()

        def add_nodes(tree_node, data_node):
            for child in data_node.children:
                if self.show_only_watched and not self._has_watched_descendant(child):
                    continue

                safe_name = escape(child.name)
                safe_ver = escape(child.version)

                child_count = len(child.children)
                count_suffix = f" [dim]↳[/] {child_count}" if child_count > 0 else ""

                if child.compromised:
                    label = f"[bold red](X) {safe_name}[/] [red]{safe_ver} (known-bad)[/]{count_suffix}"
                elif child.watched:
                    label = f"[yellow](!) {safe_name}[/] [dim]{safe_ver}[/]{count_suffix}"
                else:
                    label = f"[green](•) {safe_name} [dim]{safe_ver}[/]{count_suffix}"

                new_node = tree_node.add(label, expand=child.expanded, data=child)
                if self.show_only_watched:
                    new_node.expand()

                add_nodes(new_node, child)

        add_nodes(tree.root, root_node)
        self.query_one("#loading-container").display = False
        self.query_one("#tree-container").display = True
        tree.focus()
