import logging
import threading

import customtkinter as ctk
from tkinter import messagebox

from quickrdp.core.errors import DuplicateHost, QuickRDPError, ScanError
from quickrdp.core.scanner import collect
from quickrdp.core.session import THEME_CHANGED

logger = logging.getLogger(__name__)


class CredentialsDialog(ctk.CTkToplevel):
    """Per-host credential override."""

    def __init__(self, parent, backend, hostname: str):
        super().__init__(parent)
        self.result = None
        self.backend = backend
        self.hostname = hostname

        self.title(f"Credentials - {hostname}")
        self.geometry("400x260")
        self.resizable(False, False)
        self.transient(parent)
        self.grab_set()

        frame = ctk.CTkFrame(self, fg_color="transparent")
        frame.pack(fill="both", expand=True, padx=20, pady=15)

        ctk.CTkLabel(
            frame, text="Overrides the global credentials for this host.",
            font=ctk.CTkFont(size=11), text_color="gray", anchor="w",
        ).pack(fill="x", pady=(0, 8))

        ctk.CTkLabel(frame, text="Username", anchor="w").pack(fill="x")
        self.user_entry = ctk.CTkEntry(frame, height=32)
        self.user_entry.pack(fill="x", pady=(0, 8))

        ctk.CTkLabel(frame, text="Password", anchor="w").pack(fill="x")
        pass_row = ctk.CTkFrame(frame, fg_color="transparent")
        pass_row.pack(fill="x", pady=(0, 8))
        self.pass_entry = ctk.CTkEntry(pass_row, show="*", height=32)
        self.pass_entry.pack(side="left", fill="x", expand=True)
        self._pass_visible = False
        self._pass_toggle = ctk.CTkButton(
            pass_row, text="Show", width=55, height=32,
            fg_color=("gray70", "gray35"), hover_color=("gray60", "gray45"),
            command=self._toggle_password,
        )
        self._pass_toggle.pack(side="left", padx=(5, 0))

        btn_frame = ctk.CTkFrame(frame, fg_color="transparent")
        btn_frame.pack(fill="x", side="bottom")
        ctk.CTkButton(btn_frame, text="Save", command=self._on_save, width=90).pack(side="right")
        ctk.CTkButton(btn_frame, text="Cancel", command=self.destroy, width=80, fg_color="gray").pack(
            side="right", padx=(0, 10)
        )
        self.delete_btn = ctk.CTkButton(
            btn_frame, text="Delete", command=self._on_delete, width=80,
            fg_color="#dc2626", hover_color="#b91c1c",
        )
        self.delete_btn.pack(side="left")

        self._populate()

    def _populate(self):
        try:
            record = self.backend.get_host_credentials(self.hostname)
        except QuickRDPError as e:
            messagebox.showerror("Credentials", str(e), parent=self)
            record = None
        if record:
            self.user_entry.insert(0, record.username)
            self.pass_entry.insert(0, record.password)
        elif self.backend.host_credentials_corrupt(self.hostname):
            messagebox.showwarning(
                "Credentials",
                f"The stored credentials for {self.hostname} are unreadable. Save new ones or delete them.",
                parent=self,
            )
        else:
            self.delete_btn.configure(state="disabled")

    def _toggle_password(self):
        self._pass_visible = not self._pass_visible
        self.pass_entry.configure(show="" if self._pass_visible else "*")
        self._pass_toggle.configure(text="Hide" if self._pass_visible else "Show")

    def _on_save(self):
        username = self.user_entry.get().strip()
        if not username:
            messagebox.showwarning("Validation", "Username cannot be empty.", parent=self)
            return
        try:
            self.backend.save_host_credentials(self.hostname, username, self.pass_entry.get())
        except QuickRDPError as e:
            messagebox.showerror("Credentials", str(e), parent=self)
            return
        self.result = f"Saved credentials for {self.hostname}"
        self.grab_release()
        self.destroy()

    def _on_delete(self):
        if not messagebox.askyesno(
            "Delete Credentials", f"Delete the credentials for {self.hostname}?", parent=self
        ):
            return
        try:
            self.backend.delete_host_credentials(self.hostname)
        except QuickRDPError as e:
            messagebox.showerror("Credentials", str(e), parent=self)
            return
        self.result = f"Deleted credentials for {self.hostname}"
        self.grab_release()
        self.destroy()


class HostDialog(ctk.CTkToplevel):
    def __init__(self, parent, hostname: str = "", description: str = ""):
        super().__init__(parent)
        self.result = None

        is_edit = bool(hostname)
        self.title("Edit Host" if is_edit else "Add Host")
        self.geometry("400x220")
        self.resizable(False, False)
        self.transient(parent)
        self.grab_set()

        frame = ctk.CTkFrame(self, fg_color="transparent")
        frame.pack(fill="both", expand=True, padx=20, pady=15)

        ctk.CTkLabel(frame, text="Hostname (FQDN) *", anchor="w").pack(fill="x")
        self.host_entry = ctk.CTkEntry(frame, height=32)
        self.host_entry.pack(fill="x", pady=(0, 8))
        self.host_entry.insert(0, hostname)
        if is_edit:
            self.host_entry.configure(state="disabled")

        ctk.CTkLabel(frame, text="Description", anchor="w").pack(fill="x")
        self.desc_entry = ctk.CTkEntry(frame, height=32)
        self.desc_entry.pack(fill="x", pady=(0, 10))
        self.desc_entry.insert(0, description)
        self.desc_entry.bind("<Return>", lambda e: self._on_save())

        btn_frame = ctk.CTkFrame(frame, fg_color="transparent")
        btn_frame.pack(fill="x")
        ctk.CTkButton(btn_frame, text="Save", command=self._on_save, width=80).pack(side="right")
        ctk.CTkButton(btn_frame, text="Cancel", command=self.destroy, width=80, fg_color="gray").pack(
            side="right", padx=(0, 10)
        )

    def _on_save(self):
        hostname = self.host_entry.get().strip()
        if not hostname:
            messagebox.showwarning("Validation", "Hostname cannot be empty.", parent=self)
            return
        self.result = (hostname, self.desc_entry.get().strip())
        self.grab_release()
        self.destroy()


class HostManagerDialog(ctk.CTkToplevel):
    """Host list maintenance and directory scan with explicit import."""

    def __init__(self, parent, backend, session):
        super().__init__(parent)
        self.backend = backend
        self.session = session
        self._candidates = []
        self._scanning = False
        self._cancel_scan = threading.Event()

        self.title("Manage Hosts")
        self.geometry("760x680")
        self.transient(parent)
        self.grab_set()

        self._unsubscribe = session.bus.subscribe(THEME_CHANGED, lambda t: ctk.set_appearance_mode(t))
        self.protocol("WM_DELETE_WINDOW", self._on_close)

        for title, build in (("Hosts", self._build_hosts_section), ("Scan Domain", self._build_scan_section)):
            section = ctk.CTkFrame(self)
            section.pack(fill="both", expand=True, padx=10, pady=(10, 0))
            ctk.CTkLabel(
                section, text=title, anchor="w",
                font=ctk.CTkFont(size=14, weight="bold"),
            ).pack(fill="x", padx=10, pady=(8, 4))
            body = ctk.CTkFrame(section, fg_color="transparent")
            body.pack(fill="both", expand=True, padx=10, pady=(0, 10))
            build(body)

        self._refresh_hosts()

    # --- Hosts ---

    def _build_hosts_section(self, parent):
        bar = ctk.CTkFrame(parent, fg_color="transparent")
        bar.pack(fill="x", pady=(0, 5))
        ctk.CTkButton(bar, text="+ Host", width=90, command=self._add_host).pack(side="left")
        self.hosts_count = ctk.CTkLabel(bar, text="", text_color="gray")
        self.hosts_count.pack(side="right")

        self.hosts_list = ctk.CTkScrollableFrame(parent, fg_color="transparent")
        self.hosts_list.pack(fill="both", expand=True)

    def _refresh_hosts(self):
        for w in self.hosts_list.winfo_children():
            w.destroy()
        hosts = self.backend.list_hosts()
        self.hosts_count.configure(text=f"{len(hosts)} host(s)")
        for host in hosts:
            row = ctk.CTkFrame(self.hosts_list, fg_color=("gray90", "gray17"), corner_radius=6)
            row.pack(fill="x", pady=1)
            ctk.CTkLabel(row, text=host.hostname, anchor="w", width=260).pack(side="left", padx=8)
            ctk.CTkLabel(row, text=host.description, anchor="w", text_color="gray").pack(
                side="left", fill="x", expand=True
            )
            ctk.CTkButton(
                row, text="Remove", width=70, height=26,
                fg_color="#dc2626", hover_color="#b91c1c",
                command=lambda h=host.hostname: self._remove_host(h),
            ).pack(side="right", padx=4, pady=3)
            ctk.CTkButton(
                row, text="Edit", width=60, height=26,
                fg_color=("gray70", "gray35"), hover_color=("gray60", "gray45"),
                command=lambda h=host: self._edit_host(h),
            ).pack(side="right", pady=3)

    def _add_host(self):
        dialog = HostDialog(self)
        self.wait_window(dialog)
        if not dialog.result:
            return
        hostname, description = dialog.result
        try:
            self.backend.add_host(hostname, description)
        except DuplicateHost:
            messagebox.showwarning("Add Host", f"{hostname} is already in the host list.", parent=self)
            return
        except QuickRDPError as e:
            messagebox.showerror("Add Host", str(e), parent=self)
            return
        self._refresh_hosts()

    def _edit_host(self, host):
        dialog = HostDialog(self, host.hostname, host.description)
        self.wait_window(dialog)
        if not dialog.result:
            return
        try:
            self.backend.update_host(host.hostname, dialog.result[1])
        except QuickRDPError as e:
            messagebox.showerror("Edit Host", str(e), parent=self)
            return
        self._refresh_hosts()

    def _remove_host(self, hostname: str):
        if not messagebox.askyesno("Remove Host", f"Remove '{hostname}'?", parent=self):
            return
        try:
            self.backend.remove_host(hostname)
        except QuickRDPError as e:
            messagebox.showerror("Remove Host", str(e), parent=self)
            return
        self._refresh_hosts()

    # --- Directory scan ---

    def _build_scan_section(self, parent):
        form = ctk.CTkFrame(parent, fg_color="transparent")
        form.pack(fill="x")

        ctk.CTkLabel(form, text="Domain", anchor="w").grid(row=0, column=0, sticky="w")
        self.domain_entry = ctk.CTkEntry(form, width=200, placeholder_text="corp.local")
        self.domain_entry.grid(row=1, column=0, padx=(0, 8), pady=(0, 8))
        self.domain_entry.insert(0, self.backend.config.get("default_domain", ""))

        ctk.CTkLabel(form, text="Domain Controller", anchor="w").grid(row=0, column=1, sticky="w")
        self.server_entry = ctk.CTkEntry(form, width=200, placeholder_text="dc01.corp.local")
        self.server_entry.grid(row=1, column=1, padx=(0, 8), pady=(0, 8))
        self.server_entry.insert(0, self.backend.config.get("default_server", ""))

        ctk.CTkLabel(form, text="OU (optional)", anchor="w").grid(row=0, column=2, sticky="w")
        self.ou_entry = ctk.CTkEntry(form, width=180, placeholder_text="OU=Servers")
        self.ou_entry.grid(row=1, column=2, pady=(0, 8))

        bar = ctk.CTkFrame(parent, fg_color="transparent")
        bar.pack(fill="x", pady=(0, 5))
        self.scan_btn = ctk.CTkButton(bar, text="Scan", width=90, command=self._start_scan)
        self.scan_btn.pack(side="left")
        self.stop_btn = ctk.CTkButton(
            bar, text="Stop", width=70, fg_color="gray", state="disabled",
            command=self._cancel_scan.set,
        )
        self.stop_btn.pack(side="left", padx=5)
        self.import_btn = ctk.CTkButton(
            bar, text="Import Selected", width=130, state="disabled", command=self._import,
        )
        self.import_btn.pack(side="right")
        self.scan_status = ctk.CTkLabel(bar, text="", text_color="gray")
        self.scan_status.pack(side="left", padx=10)

        self.results = ctk.CTkScrollableFrame(parent, fg_color="transparent")
        self.results.pack(fill="both", expand=True)
        self._checks = []

    def _start_scan(self):
        if self._scanning:
            return
        try:
            scan = self.backend.scan_domain(
                self.domain_entry.get(), self.server_entry.get(), self.ou_entry.get() or None,
            )
        except QuickRDPError as e:
            messagebox.showerror("Scan", str(e), parent=self)
            return

        for w in self.results.winfo_children():
            w.destroy()
        self._candidates = []
        self._checks = []
        self._scanning = True
        self._cancel_scan.clear()
        self.scan_btn.configure(state="disabled")
        self.stop_btn.configure(state="normal")
        self.import_btn.configure(state="disabled")
        self.scan_status.configure(text="Scanning...")

        threading.Thread(target=self._run_scan, args=(scan,), daemon=True).start()

    def _run_scan(self, scan):
        def _cancellable():
            for candidate in scan:
                if self._cancel_scan.is_set():
                    return
                yield candidate

        try:
            outcome = collect(_cancellable(), on_candidate=lambda c: self.after(0, self._add_result, c))
            error = outcome.error
        except Exception as exc:
            logger.exception("Directory scan crashed")
            error = ScanError(f"Directory scan failed: {exc}")
        self.after(0, self._scan_finished, error)

    def _add_result(self, candidate):
        if not self.winfo_exists():
            return
        self._candidates.append(candidate)
        var = ctk.BooleanVar(value=candidate.hostname not in self.backend.registry)
        label = candidate.hostname
        if candidate.operating_system:
            label += f"  ({candidate.operating_system})"
        if candidate.description:
            label += f" - {candidate.description}"
        ctk.CTkCheckBox(self.results, text=label, variable=var).pack(fill="x", pady=1)
        self._checks.append(var)
        self.scan_status.configure(text=f"{len(self._candidates)} found...")

    def _scan_finished(self, error: ScanError | None):
        if not self.winfo_exists():
            return
        self._scanning = False
        self.scan_btn.configure(state="normal")
        self.stop_btn.configure(state="disabled")
        found = len(self._candidates)
        if self._candidates:
            self.import_btn.configure(state="normal")
        if error is not None:
            self.scan_status.configure(text=f"{found} found, scan failed")
            messagebox.showerror("Scan", str(error), parent=self)
        elif self._cancel_scan.is_set():
            self.scan_status.configure(text=f"{found} found, stopped")
        elif not found:
            self.scan_status.configure(text="No Windows Servers found in the domain.")
        else:
            self.scan_status.configure(text=f"Successfully found {found} server(s).")

    def _import(self):
        chosen = [c for c, var in zip(self._candidates, self._checks) if var.get()]
        if not chosen:
            return
        try:
            added, skipped = self.backend.promote_candidates(chosen)
        except QuickRDPError as e:
            messagebox.showerror("Import", str(e), parent=self)
            return
        messagebox.showinfo(
            "Import", f"Imported {added} host(s), {skipped} already present.", parent=self
        )
        self._refresh_hosts()

    def _on_close(self):
        self._cancel_scan.set()
        self._unsubscribe()
        self.grab_release()
        self.destroy()


class ResetDialog(ctk.CTkToplevel):
    def __init__(self, parent, backend):
        super().__init__(parent)
        self.result = None
        self.backend = backend

        self.title("Reset QuickRDP")
        self.geometry("480x420")
        self.resizable(False, False)
        self.transient(parent)
        self.grab_set()

        frame = ctk.CTkFrame(self, fg_color="transparent")
        frame.pack(fill="both", expand=True, padx=20, pady=15)

        ctk.CTkLabel(
            frame, text="This deletes all stored credentials, RDP files,\nthe host list and recent connections.",
            justify="left", anchor="w",
        ).pack(fill="x", pady=(0, 10))

        self.report = ctk.CTkTextbox(frame, height=230)
        self.report.pack(fill="both", expand=True, pady=(0, 10))
        self.report.configure(state="disabled")

        btn_frame = ctk.CTkFrame(frame, fg_color="transparent")
        btn_frame.pack(fill="x")
        self.reset_btn = ctk.CTkButton(
            btn_frame, text="Reset", command=self._do_reset, width=90,
            fg_color="#dc2626", hover_color="#b91c1c",
        )
        self.reset_btn.pack(side="right")
        ctk.CTkButton(btn_frame, text="Close", command=self.destroy, width=80, fg_color="gray").pack(
            side="right", padx=(0, 10)
        )

    def _do_reset(self):
        if not messagebox.askyesno("Reset", "This cannot be undone. Continue?", parent=self):
            return
        self.reset_btn.configure(state="disabled")
        try:
            summary = self.backend.reset()
        except QuickRDPError as e:
            messagebox.showerror("Reset", str(e), parent=self)
            self.reset_btn.configure(state="normal")
            return
        self.result = summary
        self.report.configure(state="normal")
        self.report.delete("1.0", "end")
        self.report.insert("1.0", summary.report())
        self.report.configure(state="disabled")
        self.reset_btn.configure(state="normal")
