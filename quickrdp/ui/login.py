import logging
from tkinter import messagebox

import customtkinter as ctk

from quickrdp.core.errors import QuickRDPError
from quickrdp.core.session import CREDENTIALS_CHANGED, THEME_CHANGED, CountdownState

logger = logging.getLogger(__name__)


class LoginWindow(ctk.CTkToplevel):
    """Global credential entry with the auto-continue countdown."""

    def __init__(self, parent, backend, session, on_done=None, on_cancel=None):
        super().__init__(parent)
        self.backend = backend
        self.session = session
        self.on_done = on_done
        self.on_cancel = on_cancel
        self.countdown = None
        self._tick_job = None
        self._filling = False

        self.title("QuickRDP - Login")
        self.geometry("380x330")
        self.resizable(False, False)

        self._unsubscribe = session.bus.subscribe(THEME_CHANGED, lambda t: ctk.set_appearance_mode(t))

        frame = ctk.CTkFrame(self, fg_color="transparent")
        frame.pack(fill="both", expand=True, padx=20, pady=15)

        ctk.CTkLabel(frame, text="Domain Credentials", font=ctk.CTkFont(size=18, weight="bold")).pack(
            fill="x", pady=(0, 10)
        )

        ctk.CTkLabel(frame, text="Username (DOMAIN\\user or user@domain)", anchor="w").pack(fill="x")
        self.user_var = ctk.StringVar()
        self.user_entry = ctk.CTkEntry(frame, textvariable=self.user_var, height=32)
        self.user_entry.pack(fill="x", pady=(0, 8))

        ctk.CTkLabel(frame, text="Password", anchor="w").pack(fill="x")
        self.pass_var = ctk.StringVar()
        self.pass_entry = ctk.CTkEntry(frame, textvariable=self.pass_var, show="*", height=32)
        self.pass_entry.pack(fill="x", pady=(0, 8))

        self.user_var.trace_add("write", lambda *a: self._on_input())
        self.pass_var.trace_add("write", lambda *a: self._on_input())

        self.timer_label = ctk.CTkLabel(
            frame, text="", font=ctk.CTkFont(size=12),
            fg_color=("#dbeafe", "#1e3a8a"), corner_radius=6,
        )

        btn_frame = ctk.CTkFrame(frame, fg_color="transparent")
        btn_frame.pack(fill="x", side="bottom")
        ctk.CTkButton(btn_frame, text="OK", command=self._on_save, width=90).pack(side="right")
        self.delete_btn = ctk.CTkButton(
            btn_frame, text="Delete", command=self._on_delete, width=80,
            fg_color="#dc2626", hover_color="#b91c1c",
        )
        self.delete_btn.pack(side="right", padx=(0, 10))
        ctk.CTkButton(btn_frame, text="Cancel", command=self._on_cancel, width=80, fg_color="gray").pack(
            side="left"
        )

        self.user_entry.bind("<Return>", lambda e: self._on_save())
        self.pass_entry.bind("<Return>", lambda e: self._on_save())
        self.protocol("WM_DELETE_WINDOW", self._on_cancel)
        self.bind("<Destroy>", self._on_destroy, add="+")

        self.start_flow()

    def start_flow(self):
        self._stop_ticking()
        self.countdown = self.session.new_countdown(on_resolved=self._on_resolved)
        intentional = self.session.consume_intentional_return()

        try:
            stored = self.backend.get_global_credentials()
        except QuickRDPError as e:
            messagebox.showerror("Credentials", str(e), parent=self)
            stored = None

        self._filling = True
        self.user_var.set(stored.username if stored else "")
        self.pass_var.set(stored.password if stored else "")
        self._filling = False
        corrupt = stored is None and self.backend.global_credentials_corrupt()
        self.delete_btn.configure(state="normal" if stored or corrupt else "disabled")

        if self.countdown.begin(has_credentials=stored is not None, intentional_return=intentional):
            self.timer_label.pack(fill="x", pady=(8, 0))
            self._tick()
        else:
            self.timer_label.pack_forget()
            self.user_entry.focus_set()

    def _tick(self):
        self._tick_job = None
        if self.countdown.tick() is not CountdownState.COUNTDOWN_ACTIVE:
            return
        self.timer_label.configure(text=f"Continuing in {self.countdown.remaining()} s - type to stay here")
        delay_ms = max(50, int(self.countdown.next_tick_delay() * 1000))
        self._tick_job = self.after(delay_ms, self._tick)

    def _stop_ticking(self):
        if self._tick_job is not None:
            self.after_cancel(self._tick_job)
            self._tick_job = None

    def _on_input(self):
        if self._filling or self.countdown is None:
            return
        if self.countdown.active:
            self.countdown.input_changed()
            self._stop_ticking()
            self.timer_label.pack_forget()

    def _on_resolved(self, reason: str):
        self._stop_ticking()
        self.timer_label.pack_forget()
        self.withdraw()
        self.session.hide("login")
        if self.on_done:
            self.on_done()

    def _on_save(self):
        username = self.user_var.get().strip()
        password = self.pass_var.get()
        if not username:
            messagebox.showwarning("Validation", "Username cannot be empty.", parent=self)
            return
        try:
            self.backend.save_global_credentials(username, password)
        except QuickRDPError as e:
            messagebox.showerror("Credentials", str(e), parent=self)
            return
        self.session.bus.publish(CREDENTIALS_CHANGED, None)
        self.countdown.confirm()

    def _on_delete(self):
        if not messagebox.askyesno("Delete Credentials", "Delete the stored domain credentials?", parent=self):
            return
        try:
            self.backend.delete_global_credentials()
        except QuickRDPError as e:
            messagebox.showerror("Credentials", str(e), parent=self)
            return
        self.countdown.cancel()
        self._filling = True
        self.user_var.set("")
        self.pass_var.set("")
        self._filling = False
        self.delete_btn.configure(state="disabled")
        self.session.bus.publish(CREDENTIALS_CHANGED, None)

    def _on_cancel(self):
        self.countdown.cancel()
        self._stop_ticking()
        self.timer_label.pack_forget()
        self.withdraw()
        self.session.hide("login")
        if self.on_cancel and not self.session.is_visible("main"):
            self.on_cancel()

    def _on_destroy(self, event):
        if event.widget is self:
            self._stop_ticking()
            self._unsubscribe()
