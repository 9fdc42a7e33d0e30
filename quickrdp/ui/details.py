import customtkinter as ctk

from quickrdp.core.errors import QuickRDPError
from quickrdp.core.rdp import split_username


class DetailsPanel(ctk.CTkFrame):
    def __init__(self, parent, backend, on_connect=None, on_credentials=None):
        super().__init__(parent)
        self.backend = backend
        self.on_connect = on_connect
        self.on_credentials = on_credentials
        self.hostname = None

        self._build_empty()

    def _build_empty(self):
        for w in self.winfo_children():
            w.destroy()

        placeholder = ctk.CTkFrame(self, fg_color="transparent")
        placeholder.place(relx=0.5, rely=0.5, anchor="center")
        ctk.CTkLabel(
            placeholder, text="No server selected",
            font=ctk.CTkFont(size=16), text_color="gray",
        ).pack()
        ctk.CTkLabel(
            placeholder, text="Search for a server on the left\nor add one under Manage Hosts.",
            font=ctk.CTkFont(size=12), text_color="gray",
        ).pack(pady=(5, 0))

    def _credential_source(self, hostname: str) -> tuple[str, str]:
        try:
            record = self.backend.get_host_credentials(hostname)
            if record is not None:
                return "Per-host", record.username
            record = self.backend.get_global_credentials()
            if record is not None:
                return "Global", record.username
        except QuickRDPError as e:
            return "Unavailable", str(e)
        return "(none)", "(not set)"

    def show_host(self, hostname: str):
        host = self.backend.get_host(hostname)
        self.hostname = hostname

        for w in self.winfo_children():
            w.destroy()

        scroll = ctk.CTkScrollableFrame(self, fg_color="transparent")
        scroll.pack(fill="both", expand=True, padx=20, pady=15)

        # Header
        header = ctk.CTkFrame(scroll, fg_color="transparent")
        header.pack(fill="x", pady=(0, 15))

        ctk.CTkLabel(
            header, text=hostname,
            font=ctk.CTkFont(size=22, weight="bold"), anchor="w",
        ).pack(fill="x")

        if host and host.description:
            ctk.CTkLabel(
                header, text=host.description,
                font=ctk.CTkFont(size=14), text_color="gray", anchor="w",
            ).pack(fill="x")

        connect_btn = ctk.CTkButton(
            scroll, text="Connect", height=45,
            font=ctk.CTkFont(size=16, weight="bold"),
            fg_color="#0078d4", hover_color="#106ebe",
            command=lambda: self._do_connect(hostname),
        )
        connect_btn.pack(fill="x", pady=(0, 20))

        source, username = self._credential_source(hostname)
        domain, user = split_username(username) if source in ("Per-host", "Global") else ("", username)

        info_frame = ctk.CTkFrame(scroll, fg_color=("gray88", "gray20"), corner_radius=8)
        info_frame.pack(fill="x", pady=(0, 10))

        fields = [
            ("Credentials", source),
            ("Username", user),
            ("Domain", domain or "(none)"),
            ("Port", "3389"),
            ("RDP File", str(self.backend.launcher.descriptor_path(hostname).name)),
        ]
        recent = next(
            (r for r in self.backend.recent_connections() if r.hostname.lower() == hostname.lower()),
            None,
        )
        if recent:
            fields.append(("Last Connected", recent.when))

        for label, value in fields:
            row = ctk.CTkFrame(info_frame, fg_color="transparent")
            row.pack(fill="x", padx=15, pady=6)
            ctk.CTkLabel(row, text=label, width=130, anchor="w",
                         font=ctk.CTkFont(size=12), text_color="gray").pack(side="left")
            ctk.CTkLabel(row, text=value, anchor="w",
                         font=ctk.CTkFont(size=12)).pack(side="left", fill="x", expand=True)

        btn_frame = ctk.CTkFrame(scroll, fg_color="transparent")
        btn_frame.pack(fill="x", pady=(10, 0))

        ctk.CTkButton(
            btn_frame, text="Credentials...", width=120, fg_color=("gray70", "gray35"),
            hover_color=("gray60", "gray45"),
            command=lambda: self._do_credentials(hostname),
        ).pack(side="left", padx=(0, 10))

    def _do_connect(self, hostname: str):
        if self.on_connect:
            self.on_connect(hostname)

    def _do_credentials(self, hostname: str):
        if self.on_credentials:
            self.on_credentials(hostname)

    def clear(self):
        self.hostname = None
        self._build_empty()
