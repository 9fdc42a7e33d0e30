import logging
import threading
from pathlib import Path
from tkinter import messagebox

import customtkinter as ctk

from quickrdp.core.backend import Backend
from quickrdp.core.errors import QuickRDPError
from quickrdp.core.models import NO_QUERY
from quickrdp.core.session import CREDENTIALS_CHANGED, HOSTS_CHANGED, THEME_CHANGED, SessionCoordinator
from quickrdp.ui.details import DetailsPanel
from quickrdp.ui.dialogs import CredentialsDialog, HostManagerDialog, ResetDialog
from quickrdp.ui.login import LoginWindow
from quickrdp.ui.sidebar import Sidebar

logger = logging.getLogger(__name__)

ASSETS_PATH = Path(__file__).parent.parent.parent / "assets"


class QuickRDPApp(ctk.CTk):
    def __init__(self, backend: Backend):
        super().__init__()

        self.title("QuickRDP")
        self.geometry("1000x640")
        self.minsize(760, 480)

        ico_path = ASSETS_PATH / "logo.ico"
        if ico_path.exists():
            self.iconbitmap(str(ico_path))

        self.backend = backend
        self.session = SessionCoordinator(countdown_seconds=backend.config["countdown_seconds"])
        self._tray_icon = None
        self._unsubscribe = []

        ctk.set_default_color_theme("blue")
        self._apply_theme(backend.config["theme"])
        self._unsubscribe.append(self.session.bus.subscribe(THEME_CHANGED, self._on_theme_changed))
        self._unsubscribe.append(self.session.bus.subscribe(HOSTS_CHANGED, lambda _: self._on_search()))
        self._unsubscribe.append(self.session.bus.subscribe(CREDENTIALS_CHANGED, lambda _: self._refresh_details()))

        self._build_ui()
        self._setup_tray()

        self.withdraw()
        self._login = None
        self.after(0, self.show_login)

    def _build_ui(self):
        # Top bar
        top = ctk.CTkFrame(self, height=50, corner_radius=0)
        top.pack(fill="x")
        top.pack_propagate(False)

        self.search_var = ctk.StringVar()
        self.search_var.trace_add("write", lambda *a: self._on_search())
        search = ctk.CTkEntry(
            top, placeholder_text="Search servers...",
            textvariable=self.search_var, width=280, height=32,
        )
        search.pack(side="left", padx=(15, 10), pady=9)

        self._theme_var = ctk.StringVar(value=self.session.theme.capitalize())
        ctk.CTkOptionMenu(
            top, variable=self._theme_var, values=["Dark", "Light", "System"],
            height=32, width=100,
            command=lambda v: self.session.set_theme(v.lower()),
        ).pack(side="right", padx=(5, 15), pady=9)

        menu_frame = ctk.CTkFrame(top, fg_color="transparent")
        menu_frame.pack(side="right", padx=5)
        ctk.CTkButton(
            menu_frame, text="Manage Hosts", width=110, height=32,
            command=self._manage_hosts,
        ).pack(side="left", padx=5)
        ctk.CTkButton(
            menu_frame, text="Login", width=70, height=28,
            fg_color="transparent", hover_color=("gray75", "gray30"),
            command=self._return_to_login,
        ).pack(side="left")
        ctk.CTkButton(
            menu_frame, text="Reset", width=70, height=28,
            fg_color="transparent", hover_color=("gray75", "gray30"),
            text_color="#dc2626",
            command=self._reset,
        ).pack(side="left")

        # Main area
        main = ctk.CTkFrame(self, fg_color="transparent")
        main.pack(fill="both", expand=True)

        self.sidebar = Sidebar(
            main,
            on_select=self._on_select,
            on_connect=self._connect,
            on_credentials=self._edit_host_credentials,
            on_remove=self._remove_host,
        )
        self.sidebar.pack(side="left", fill="y", padx=(5, 0), pady=5)

        self.details = DetailsPanel(
            main,
            backend=self.backend,
            on_connect=self._connect,
            on_credentials=self._edit_host_credentials,
        )
        self.details.pack(side="left", fill="both", expand=True, padx=5, pady=5)

        # Status bar
        self.status_bar = ctk.CTkLabel(
            self, text="Ready", height=25, anchor="w",
            font=ctk.CTkFont(size=11), text_color="gray",
        )
        self.status_bar.pack(fill="x", padx=10, pady=(0, 5))

        # Keybindings
        self.bind("<Return>", lambda e: self._connect_selected())
        self.bind("<Escape>", lambda e: self.search_var.set(""))

        self.protocol("WM_DELETE_WINDOW", self._on_close)

        self._on_search()

    # --- Windows and theme ---

    def _apply_theme(self, theme: str):
        ctk.set_appearance_mode(theme)
        self.session.theme = theme

    def _on_theme_changed(self, theme: str):
        ctk.set_appearance_mode(theme)
        self._theme_var.set(theme.capitalize())

    def show_login(self):
        if self._login is not None and self._login.winfo_exists():
            self._login.deiconify()
            self._login.lift()
            self._login.start_flow()
            return
        self._login = LoginWindow(
            self, self.backend, self.session,
            on_done=self.show_main, on_cancel=self._on_close,
        )
        self.session.show("login")

    def show_main(self):
        self.session.show("main")
        self.deiconify()
        self.lift()
        self.focus_force()
        self._refresh_recent()

    def _return_to_login(self):
        self.withdraw()
        self.session.return_to_login("main")
        self.show_login()

    # --- Host list ---

    def _on_search(self):
        result = self.backend.search_hosts(self.search_var.get())
        if result is NO_QUERY:
            self.sidebar.show_prompt(self.backend.recent_connections())
        else:
            self.sidebar.show_hosts(result)

    def _refresh_recent(self):
        if not self.search_var.get().strip():
            self._on_search()

    def _on_select(self, hostname: str):
        self.details.show_host(hostname)

    def _refresh_details(self):
        if self.details.hostname:
            self.details.show_host(self.details.hostname)

    def _connect(self, hostname: str):
        self._set_status(f"Connecting to {hostname}...")

        def _work():
            try:
                self.backend.launch(hostname)
            except QuickRDPError as e:
                self.after(0, lambda: self._report_error("Connection Error", e, "Connection failed"))
                return
            self.after(0, lambda: (self._set_status(f"Launched RDP: {hostname}"), self._refresh_recent()))

        threading.Thread(target=_work, daemon=True).start()

    def _connect_selected(self):
        sel = self.sidebar.get_selected()
        if sel:
            self._connect(sel)

    def _edit_host_credentials(self, hostname: str):
        dialog = CredentialsDialog(self, self.backend, hostname)
        self.wait_window(dialog)
        if dialog.result:
            self.session.bus.publish(CREDENTIALS_CHANGED, hostname)
            self._set_status(dialog.result)

    def _remove_host(self, hostname: str):
        if not messagebox.askyesno("Remove Host", f"Remove '{hostname}' from the host list?"):
            return
        try:
            self.backend.remove_host(hostname)
        except QuickRDPError as e:
            self._report_error("Error", e)
            return
        self.details.clear()
        self.session.bus.publish(HOSTS_CHANGED, hostname)
        self._set_status(f"Removed {hostname}")

    def _manage_hosts(self):
        dialog = HostManagerDialog(self, self.backend, self.session)
        self.wait_window(dialog)
        self.session.bus.publish(HOSTS_CHANGED, None)

    def _reset(self):
        dialog = ResetDialog(self, self.backend)
        self.wait_window(dialog)
        if dialog.result is not None:
            self.details.clear()
            self.search_var.set("")
            self.session.bus.publish(HOSTS_CHANGED, None)
            self.session.bus.publish(CREDENTIALS_CHANGED, None)
            self._set_status("Application reset")

    def _report_error(self, title: str, error: Exception, status: str | None = None):
        logger.error("%s: %s", title, error)
        messagebox.showerror(title, str(error))
        if status:
            self._set_status(status)

    def _set_status(self, text: str):
        self.status_bar.configure(text=text)

    # --- Tray ---

    def _setup_tray(self):
        try:
            import pystray
            from PIL import Image

            tray_path = ASSETS_PATH / "tray.png"
            if tray_path.exists():
                img = Image.open(str(tray_path))
            else:
                img = Image.new("RGB", (64, 64), color="#0078d4")

            def on_show(icon, item):
                self.after(0, self._restore_from_tray)

            def on_login(icon, item):
                self.after(0, self._return_to_login)

            def on_quit(icon, item):
                icon.stop()
                self.after(0, self._quit)

            menu = pystray.Menu(
                pystray.MenuItem("Show", on_show, default=True),
                pystray.MenuItem("Login", on_login),
                pystray.MenuItem("Quit", on_quit),
            )
            self._tray_icon = pystray.Icon("QuickRDP", img, "QuickRDP", menu)

            t = threading.Thread(target=self._tray_icon.run, daemon=True)
            t.start()
        except ImportError:
            logger.info("pystray not available, running without a tray icon")

    def _restore_from_tray(self):
        if self.session.last_hidden == "login" and not self.session.is_visible("main"):
            self.show_login()
            return
        self.show_main()

    def _on_close(self):
        if self._tray_icon:
            self.withdraw()
            self.session.hide("main")
        else:
            self._quit()

    def _quit(self):
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self.destroy()
