"""Windows metric source over kernel32/psapi via ctypes.

APIs used:
- GetSystemTimes: system-wide kernel + user time
- OpenProcess / GetProcessTimes: per-process times
- CreateToolhelp32Snapshot / Thread32First / Thread32Next: thread enumeration
- OpenThread / GetThreadTimes: per-thread times
- Process32FirstW / Process32NextW: child enumeration
- GlobalMemoryStatusEx: total physical memory
- GetProcessMemoryInfo: per-process working set

All times are FILETIME values in 100ns units. The DLLs are loaded when a
Win32Source is constructed so the structures stay importable elsewhere.
"""

import ctypes
from ctypes import (
    POINTER,
    Structure,
    byref,
    c_int,
    c_int32,
    c_size_t,
    c_uint32,
    c_uint64,
    c_void_p,
)

import structlog

from proc_usage.errors import ReadFailure
from proc_usage.models import MemorySize, RawStat

log = structlog.get_logger()

# ─────────────────────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────────────────────

PROCESS_VM_READ = 0x0010
PROCESS_QUERY_LIMITED_INFORMATION = 0x1000
THREAD_QUERY_LIMITED_INFORMATION = 0x0800

TH32CS_SNAPPROCESS = 0x00000002
TH32CS_SNAPTHREAD = 0x00000004

INVALID_HANDLE_VALUE = c_void_p(-1).value
MAX_PATH = 260

# ─────────────────────────────────────────────────────────────────────────────
# Structures
# ─────────────────────────────────────────────────────────────────────────────


class FileTime(Structure):
    """FILETIME from minwinbase.h."""

    _fields_ = [
        ("dwLowDateTime", c_uint32),
        ("dwHighDateTime", c_uint32),
    ]

    def to_int(self) -> int:
        return (self.dwHighDateTime << 32) | self.dwLowDateTime


class MemoryStatusEx(Structure):
    """MEMORYSTATUSEX from sysinfoapi.h. dwLength must be set before the call."""

    _fields_ = [
        ("dwLength", c_uint32),
        ("dwMemoryLoad", c_uint32),
        ("ullTotalPhys", c_uint64),
        ("ullAvailPhys", c_uint64),
        ("ullTotalPageFile", c_uint64),
        ("ullAvailPageFile", c_uint64),
        ("ullTotalVirtual", c_uint64),
        ("ullAvailVirtual", c_uint64),
        ("ullAvailExtendedVirtual", c_uint64),
    ]


class ProcessMemoryCounters(Structure):
    """PROCESS_MEMORY_COUNTERS from psapi.h."""

    _fields_ = [
        ("cb", c_uint32),
        ("PageFaultCount", c_uint32),
        ("PeakWorkingSetSize", c_size_t),
        ("WorkingSetSize", c_size_t),
        ("QuotaPeakPagedPoolUsage", c_size_t),
        ("QuotaPagedPoolUsage", c_size_t),
        ("QuotaPeakNonPagedPoolUsage", c_size_t),
        ("QuotaNonPagedPoolUsage", c_size_t),
        ("PagefileUsage", c_size_t),
        ("PeakPagefileUsage", c_size_t),
    ]


class ThreadEntry32(Structure):
    """THREADENTRY32 from tlhelp32.h."""

    _fields_ = [
        ("dwSize", c_uint32),
        ("cntUsage", c_uint32),
        ("th32ThreadID", c_uint32),
        ("th32OwnerProcessID", c_uint32),
        ("tpBasePri", c_int32),
        ("tpDeltaPri", c_int32),
        ("dwFlags", c_uint32),
    ]


class ProcessEntry32W(Structure):
    """PROCESSENTRY32W from tlhelp32.h."""

    _fields_ = [
        ("dwSize", c_uint32),
        ("cntUsage", c_uint32),
        ("th32ProcessID", c_uint32),
        ("th32DefaultHeapID", c_size_t),
        ("th32ModuleID", c_uint32),
        ("cntThreads", c_uint32),
        ("th32ParentProcessID", c_uint32),
        ("pcPriClassBase", c_int32),
        ("dwFlags", c_uint32),
        ("szExeFile", ctypes.c_wchar * MAX_PATH),
    ]


# ─────────────────────────────────────────────────────────────────────────────
# Library loading
# ─────────────────────────────────────────────────────────────────────────────


def _load_libraries() -> tuple[ctypes.CDLL, ctypes.CDLL]:
    """Load kernel32 and psapi and declare the signatures used here."""
    kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)  # type: ignore[attr-defined]
    psapi = ctypes.WinDLL("psapi", use_last_error=True)  # type: ignore[attr-defined]

    lp_filetime = POINTER(FileTime)

    kernel32.GetSystemTimes.argtypes = [lp_filetime, lp_filetime, lp_filetime]
    kernel32.GetSystemTimes.restype = c_int

    kernel32.OpenProcess.argtypes = [c_uint32, c_int, c_uint32]
    kernel32.OpenProcess.restype = c_void_p

    kernel32.OpenThread.argtypes = [c_uint32, c_int, c_uint32]
    kernel32.OpenThread.restype = c_void_p

    times_args = [c_void_p, lp_filetime, lp_filetime, lp_filetime, lp_filetime]
    kernel32.GetProcessTimes.argtypes = times_args
    kernel32.GetProcessTimes.restype = c_int

    kernel32.GetThreadTimes.argtypes = times_args
    kernel32.GetThreadTimes.restype = c_int

    kernel32.CloseHandle.argtypes = [c_void_p]
    kernel32.CloseHandle.restype = c_int

    kernel32.CreateToolhelp32Snapshot.argtypes = [c_uint32, c_uint32]
    kernel32.CreateToolhelp32Snapshot.restype = c_void_p

    kernel32.Thread32First.argtypes = [c_void_p, POINTER(ThreadEntry32)]
    kernel32.Thread32First.restype = c_int
    kernel32.Thread32Next.argtypes = [c_void_p, POINTER(ThreadEntry32)]
    kernel32.Thread32Next.restype = c_int

    kernel32.Process32FirstW.argtypes = [c_void_p, POINTER(ProcessEntry32W)]
    kernel32.Process32FirstW.restype = c_int
    kernel32.Process32NextW.argtypes = [c_void_p, POINTER(ProcessEntry32W)]
    kernel32.Process32NextW.restype = c_int

    kernel32.GlobalMemoryStatusEx.argtypes = [POINTER(MemoryStatusEx)]
    kernel32.GlobalMemoryStatusEx.restype = c_int

    psapi.GetProcessMemoryInfo.argtypes = [c_void_p, POINTER(ProcessMemoryCounters), c_uint32]
    psapi.GetProcessMemoryInfo.restype = c_int

    return kernel32, psapi


def _win32_failure(api: str, target: str = "") -> ReadFailure:
    err = ctypes.get_last_error()
    suffix = f" for {target}" if target else ""
    log.debug("read_failed", api=api, target=target, win32_error=err)
    return ReadFailure(f"{api} failed{suffix} (Win32 error {err})")


# ─────────────────────────────────────────────────────────────────────────────
# Source
# ─────────────────────────────────────────────────────────────────────────────


class Win32Source:
    """Reads raw counters through the Win32 API.

    Windows exposes no command, state or parent in the time APIs, so RawStats
    from this source carry an empty command, state '?' and ppid 0.
    """

    def __init__(self) -> None:
        self._kernel32, self._psapi = _load_libraries()

    def _open_process(self, pid: int) -> int:
        access = PROCESS_QUERY_LIMITED_INFORMATION | PROCESS_VM_READ
        handle = self._kernel32.OpenProcess(access, False, pid)
        if not handle:
            raise _win32_failure("OpenProcess", f"pid {pid}")
        return handle

    def _snapshot_entries(self, flags: int, entry_type, first, next_):
        """Yield every toolhelp entry of one kind, closing the snapshot afterwards."""
        snapshot = self._kernel32.CreateToolhelp32Snapshot(flags, 0)
        if not snapshot or snapshot == INVALID_HANDLE_VALUE:
            raise _win32_failure("CreateToolhelp32Snapshot")
        try:
            entry = entry_type()
            entry.dwSize = ctypes.sizeof(entry_type)
            ok = first(snapshot, byref(entry))
            while ok:
                yield entry
                ok = next_(snapshot, byref(entry))
        finally:
            self._kernel32.CloseHandle(snapshot)

    # ─────────────────────────────────────────────────────────────────────
    # CPU
    # ─────────────────────────────────────────────────────────────────────

    def total_system_cpu_ticks(self) -> int:
        idle, kernel, user = FileTime(), FileTime(), FileTime()
        if not self._kernel32.GetSystemTimes(byref(idle), byref(kernel), byref(user)):
            raise _win32_failure("GetSystemTimes")
        # Kernel time already includes idle time
        return kernel.to_int() + user.to_int()

    def process_raw_stat(self, pid: int) -> RawStat:
        handle = self._open_process(pid)
        try:
            creation, exit_, kernel, user = FileTime(), FileTime(), FileTime(), FileTime()
            if not self._kernel32.GetProcessTimes(
                handle, byref(creation), byref(exit_), byref(kernel), byref(user)
            ):
                raise _win32_failure("GetProcessTimes", f"pid {pid}")
        finally:
            self._kernel32.CloseHandle(handle)
        return RawStat(
            pid=pid,
            command="",
            state="?",
            ppid=0,
            user_ticks=user.to_int(),
            kernel_ticks=kernel.to_int(),
        )

    def thread_ids(self, pid: int) -> list[int]:
        entries = self._snapshot_entries(
            TH32CS_SNAPTHREAD,
            ThreadEntry32,
            self._kernel32.Thread32First,
            self._kernel32.Thread32Next,
        )
        return sorted(e.th32ThreadID for e in entries if e.th32OwnerProcessID == pid)

    def thread_raw_stat(self, pid: int, tid: int) -> RawStat:
        handle = self._kernel32.OpenThread(THREAD_QUERY_LIMITED_INFORMATION, False, tid)
        if not handle:
            raise _win32_failure("OpenThread", f"tid {tid}")
        try:
            creation, exit_, kernel, user = FileTime(), FileTime(), FileTime(), FileTime()
            if not self._kernel32.GetThreadTimes(
                handle, byref(creation), byref(exit_), byref(kernel), byref(user)
            ):
                raise _win32_failure("GetThreadTimes", f"tid {tid}")
        finally:
            self._kernel32.CloseHandle(handle)
        return RawStat(
            pid=pid,
            command="",
            state="?",
            ppid=0,
            user_ticks=user.to_int(),
            kernel_ticks=kernel.to_int(),
            tid=tid,
        )

    def child_ids(self, pid: int) -> list[int]:
        entries = self._snapshot_entries(
            TH32CS_SNAPPROCESS,
            ProcessEntry32W,
            self._kernel32.Process32FirstW,
            self._kernel32.Process32NextW,
        )
        return sorted(
            e.th32ProcessID
            for e in entries
            if e.th32ParentProcessID == pid and e.th32ProcessID != pid
        )

    # ─────────────────────────────────────────────────────────────────────
    # Memory
    # ─────────────────────────────────────────────────────────────────────

    def total_system_memory(self) -> MemorySize:
        status = MemoryStatusEx()
        status.dwLength = ctypes.sizeof(MemoryStatusEx)
        if not self._kernel32.GlobalMemoryStatusEx(byref(status)):
            raise _win32_failure("GlobalMemoryStatusEx")
        return MemorySize.from_bytes(status.ullTotalPhys)

    def process_memory(self, pid: int) -> MemorySize:
        handle = self._open_process(pid)
        try:
            counters = ProcessMemoryCounters()
            counters.cb = ctypes.sizeof(ProcessMemoryCounters)
            if not self._psapi.GetProcessMemoryInfo(handle, byref(counters), counters.cb):
                raise _win32_failure("GetProcessMemoryInfo", f"pid {pid}")
        finally:
            self._kernel32.CloseHandle(handle)
        return MemorySize.from_bytes(counters.WorkingSetSize)
