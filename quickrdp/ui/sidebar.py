import threading
import tkinter as tk
import customtkinter as ctk

from quickrdp.core.rdp import ping_host


class Sidebar(ctk.CTkFrame):
    def __init__(self, parent, on_select=None, on_connect=None, on_credentials=None, on_remove=None):
        super().__init__(parent, width=340)
        self.pack_propagate(False)

        self.on_select = on_select
        self.on_connect = on_connect
        self.on_credentials = on_credentials
        self.on_remove = on_remove

        self._status_cache = {}
        self._widgets = {}
        self._selected = None
        self._hosts = []

        self.scroll = ctk.CTkScrollableFrame(self, fg_color="transparent")
        self.scroll.pack(fill="both", expand=True, padx=5, pady=5)

        self._context_menu = tk.Menu(self, tearoff=0)
        self._context_menu.add_command(label="Connect", command=self._ctx_connect)
        self._context_menu.add_separator()
        self._context_menu.add_command(label="Credentials...", command=self._ctx_credentials)
        self._context_menu.add_separator()
        self._context_menu.add_command(label="Remove", command=self._ctx_remove)

        self._ctx_hostname = None

    def _clear(self):
        for w in self.scroll.winfo_children():
            w.destroy()
        self._widgets.clear()

    def show_prompt(self, recent=None):
        """Empty search: show a hint and the recent connections instead of every host."""
        self._clear()
        self._hosts = []
        ctk.CTkLabel(
            self.scroll, text="Search for servers to connect",
            font=ctk.CTkFont(size=13), text_color="gray",
        ).pack(fill="x", pady=(20, 10))

        if recent:
            ctk.CTkLabel(
                self.scroll, text=" Recent", anchor="w",
                font=ctk.CTkFont(size=13, weight="bold"),
            ).pack(fill="x", pady=(8, 2))
            for entry in recent:
                self._render_host(entry.hostname, entry.when)

    def show_hosts(self, hosts):
        self._clear()
        self._hosts = list(hosts)
        if not self._hosts:
            ctk.CTkLabel(
                self.scroll, text="No matching servers",
                font=ctk.CTkFont(size=13), text_color="gray",
            ).pack(fill="x", pady=20)
            return
        for host in self._hosts:
            self._render_host(host.hostname, host.description)
        self._check_status_all([h.hostname for h in self._hosts])

    def _render_host(self, hostname: str, subtitle: str = ""):
        is_selected = hostname == self._selected

        frame = ctk.CTkFrame(
            self.scroll, height=44,
            fg_color=("gray75", "gray30") if is_selected else ("gray90", "gray17"),
            corner_radius=6,
        )
        frame.pack(fill="x", padx=(5, 0), pady=1)
        frame.pack_propagate(False)

        status = self._status_cache.get(hostname, "gray")
        colors = {"green": "#22c55e", "red": "#ef4444", "gray": "#6b7280"}
        dot = ctk.CTkLabel(
            frame, text="●", width=20,
            text_color=colors.get(status, "#6b7280"),
            font=ctk.CTkFont(size=10),
        )
        dot.pack(side="left", padx=(8, 2))

        name_label = ctk.CTkLabel(
            frame, text=hostname, anchor="w",
            font=ctk.CTkFont(size=12),
        )
        name_label.pack(side="top", fill="x", padx=2, pady=(4, 0))

        sub_label = ctk.CTkLabel(
            frame, text=subtitle, anchor="w",
            font=ctk.CTkFont(size=10), text_color="gray",
        )
        sub_label.pack(side="top", fill="x", padx=2)

        for widget in (frame, dot, name_label, sub_label):
            widget.bind("<Button-1>", lambda e, h=hostname: self._select(h))
            widget.bind("<Double-Button-1>", lambda e, h=hostname: self._double_click(h))
            widget.bind("<Button-3>", lambda e, h=hostname: self._show_context(e, h))

        self._widgets[hostname] = {"frame": frame, "dot": dot}

    def _select(self, hostname: str):
        previous = self._widgets.get(self._selected)
        if previous and previous["frame"].winfo_exists():
            previous["frame"].configure(fg_color=("gray90", "gray17"))
        self._selected = hostname
        current = self._widgets.get(hostname)
        if current:
            current["frame"].configure(fg_color=("gray75", "gray30"))
        if self.on_select:
            self.on_select(hostname)

    def _double_click(self, hostname: str):
        if self.on_connect:
            self.on_connect(hostname)

    def _show_context(self, event, hostname: str):
        self._ctx_hostname = hostname
        self._select(hostname)
        try:
            self._context_menu.tk_popup(event.x_root, event.y_root)
        finally:
            self._context_menu.grab_release()

    def _ctx_connect(self):
        if self._ctx_hostname and self.on_connect:
            self.on_connect(self._ctx_hostname)

    def _ctx_credentials(self):
        if self._ctx_hostname and self.on_credentials:
            self.on_credentials(self._ctx_hostname)

    def _ctx_remove(self):
        if self._ctx_hostname and self.on_remove:
            self.on_remove(self._ctx_hostname)

    def _check_status_all(self, hostnames: list):
        for hostname in hostnames:
            t = threading.Thread(target=self._check_single, args=(hostname,), daemon=True)
            t.start()

    def _check_single(self, hostname: str):
        alive = ping_host(hostname)
        self._status_cache[hostname] = "green" if alive else "red"
        self.after(0, self._paint_status, hostname, alive)

    def _paint_status(self, hostname: str, alive: bool):
        widget = self._widgets.get(hostname)
        if widget and widget["dot"].winfo_exists():
            widget["dot"].configure(text_color="#22c55e" if alive else "#ef4444")

    def get_selected(self) -> str | None:
        return self._selected
