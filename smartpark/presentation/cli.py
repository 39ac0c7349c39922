# File: smartpark/presentation/cli.py
"""
Text menu for the SmartPark system

A thin loop over ParkingService: it reads choices, delegates every use
case, and prints the result. Input and output functions are injectable so
the menu can be driven by a script.
"""

from getpass import getpass
from typing import Callable, Dict, Optional
import logging

from ..application.parking_service import ParkingService

MENU_ITEMS = (
    "Register (New User)",
    "Login",
    "Reserve Slot (Users Only)",
    "Mark Entry (Attendant/Admin)",
    "Mark Exit (Attendant/Admin)",
    "Show Slots (Staff Only)",
    "Show Parking Fees",
    "Save Bookings (Admin Only)",
    "Load Bookings (Admin Only)",
    "Register Staff (Admin Only)",
    "View My History (Users Only)",
    "Logout",
    "Exit Application",
)

EXIT_CHOICE = len(MENU_ITEMS)


class ParkingMenu:
    """Interactive command loop"""

    def __init__(
        self,
        service: ParkingService,
        input_fn: Callable[[str], str] = input,
        output_fn: Callable[[str], None] = print,
        password_fn: Optional[Callable[[str], str]] = None
    ):
        self.service = service
        self.input = input_fn
        self.output = output_fn
        self.read_password = password_fn or getpass
        self.logger = logging.getLogger(self.__class__.__name__)
        self.actions: Dict[int, Callable[[], None]] = {
            1: self.register,
            2: self.login,
            3: self.reserve,
            4: self.mark_entry,
            5: self.mark_exit,
            6: self.show_slots,
            7: self.show_fees,
            8: self.save,
            9: self.load,
            10: self.register_staff,
            11: self.show_history,
            12: self.logout,
        }

    def run(self) -> None:
        while True:
            self.print_menu()
            try:
                choice = self.read_int("Enter choice: ")
            except EOFError:
                break
            if choice == EXIT_CHOICE:
                self.output("Goodbye.")
                break
            action = self.actions.get(choice)
            if action is None:
                self.output("Invalid choice.")
                continue
            try:
                action()
            except EOFError:
                break

    def print_menu(self) -> None:
        self.output("\nSMART PARKING SYSTEM")
        user = self.service.current_user_dto()
        if user is None:
            self.output("Status: Guest")
        else:
            self.output(f"Logged in as: {user.username} [{user.role}]")
        for number, label in enumerate(MENU_ITEMS, start=1):
            self.output(f"{number}. {label}")

    def read_int(self, prompt: str) -> int:
        while True:
            raw = self.input(prompt).strip()
            try:
                return int(raw)
            except ValueError:
                self.output("Please enter a valid number.")

    # Menu actions

    def register(self) -> None:
        username = self.input("Enter new username: ")
        password = self.read_password("Enter new password: ")
        user = self.service.register(username, password)
        if user is None:
            self.output("Error: Username already taken or invalid.")
        else:
            self.output(f"Success: User registered with ID {user.user_id}")

    def login(self) -> None:
        username = self.input("Username: ")
        password = self.read_password("Password: ")
        user = self.service.login(username, password)
        if user is None:
            self.output("Login failed. Invalid credentials.")
        else:
            self.output(f"Login successful! Welcome, {user.username}")

    def reserve(self) -> None:
        raw = self.input("Enter slot ID to reserve (blank for any free slot): ").strip()
        slot_id = None
        if raw:
            try:
                slot_id = int(raw)
            except ValueError:
                self.output("Please enter a valid number.")
                return
        result = self.service.reserve_slot(slot_id)
        self.output(("Success: " if result.success else "") + result.message)

    def mark_entry(self) -> None:
        booking_id = self.read_int("Enter booking ID to mark entry: ")
        result = self.service.mark_entry(booking_id)
        self.output(result.message)

    def mark_exit(self) -> None:
        booking_id = self.read_int("Enter booking ID to mark exit: ")
        result = self.service.mark_exit(booking_id)
        self.output(result.message)

    def show_slots(self) -> None:
        slots = self.service.slot_status()
        if slots is None:
            self.output("Access Denied: Only Staff can view the master slot list.")
            return
        self.output("\nLive Slot Status")
        self.output(f"{'ID':<5} | {'Type':<15} | {'Status':<10}")
        for slot in slots:
            self.output(f"{slot.id:<5} | {slot.slot_type:<15} | {slot.status:<10}")

    def show_fees(self) -> None:
        self.output("\nCurrent Parking Fees (Per Minute)")
        for fee in self.service.fee_schedule():
            label = f"{fee.slot_type.title()} Slot"
            self.output(f"{label:<20} : ${fee.rate_per_minute:6.2f} / min")

    def save(self) -> None:
        self.output(self.service.save_bookings().message)

    def load(self) -> None:
        self.output(self.service.load_bookings().message)

    def register_staff(self) -> None:
        username = self.input("Enter new staff username: ")
        password = self.read_password("Enter password for staff: ")
        self.output(self.service.register_staff(username, password).message)

    def show_history(self) -> None:
        history = self.service.my_history()
        if history is None:
            self.output("Access Denied: Only Users can view their personal history.")
            return
        if not history:
            self.output("No bookings yet.")
            return
        for booking in history:
            self.output(
                f"Booking[id={booking.id}, slot={booking.slot_id}, "
                f"status={booking.status}, amount={booking.amount_display}]"
            )

    def logout(self) -> None:
        self.service.logout()
        self.output("Logged out.")
