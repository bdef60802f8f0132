import os
import signal
import subprocess
import time

from mitobatch.batch.cancellation import CancellationManager


def start_sleeper(seconds=30):
    return subprocess.Popen(['sleep', str(seconds)], start_new_session=True)


def test_cancel_terminates_registered_processes():
    cancellation = CancellationManager(grace_period=5)
    process = start_sleeper()
    cancellation.register_process(process)
    notified = []
    cancellation.add_listener(lambda: notified.append(True))
    cancellation.cancel('Stopped by test.')
    assert process.wait(timeout=10) == -signal.SIGTERM
    assert cancellation.is_cancelled()
    assert notified == [True]
    assert cancellation.wait_for_processes(timeout=5)


def test_process_registered_after_cancel_is_terminated():
    cancellation = CancellationManager()
    cancellation.cancel('Stopped by test.')
    process = start_sleeper()
    cancellation.register_process(process)
    assert process.wait(timeout=10) == -signal.SIGTERM


def test_survivors_are_killed_after_grace_period():
    cancellation = CancellationManager(grace_period=0.5)
    process = subprocess.Popen(
        ['sh', '-c', 'trap "" TERM; echo ready; while true; do sleep 1; done'],
        start_new_session=True,
        stdout=subprocess.PIPE,
    )
    assert process.stdout.readline() == b'ready\n'
    cancellation.register_process(process)
    started = time.monotonic()
    cancellation.cancel('Stopped by test.')
    cancellation.finish_termination()
    assert process.wait(timeout=10) == -signal.SIGKILL
    assert time.monotonic() - started < 10
    process.stdout.close()


def test_cleanup_removes_temporary_artifacts(tmp_path):
    cancellation = CancellationManager()
    directory = tmp_path / 'scratch'
    os.makedirs(directory / 'nested')
    (directory / 'nested' / 'commands.sh').write_text('echo\n', encoding='utf-8')
    single = tmp_path / 'staged.vcf'
    single.write_text('##\n', encoding='utf-8')
    cancellation.register_temporary(str(directory))
    cancellation.register_temporary(str(single))
    cancellation.register_temporary(str(tmp_path / 'never-created'))
    cancellation.cleanup()
    assert not directory.exists()
    assert not single.exists()


def test_signal_handlers_restored():
    previous = signal.getsignal(signal.SIGTERM)
    with CancellationManager() as cancellation:
        assert signal.getsignal(signal.SIGTERM) == cancellation._handle_signal
        os.kill(os.getpid(), signal.SIGTERM)
        deadline = time.monotonic() + 5
        while not cancellation.is_cancelled() and time.monotonic() < deadline:
            time.sleep(0.05)
        assert cancellation.is_cancelled()
    assert signal.getsignal(signal.SIGTERM) == previous
