"""
Interactive shell to play with Descartes instances, with an in-memory Logger, a verification game whose verdict is
decided by the user, and a clock that only moves with the `advance` command.

Every machine template is pristine (all zeros); the shell builds the claimer's proofs by itself.

Example session:

    store data=0x0102030405060708
    instantiate claimer=alice challenger=bob drives='[{"position": "0x1000", "log2_size": 3, "provider": "carol", "needs_provider": true, "needs_logger": true}]'
    claim_logger item=0 root=<root printed by store> caller=carol
    submit item=0 output=0x2a
    challenge item=0
    verdict item=0 winner=claimer
    win item=0
    result item=0
"""

import argparse
import json
import logging
import shlex
import traceback
from typing import Dict, List

from prompt_toolkit import prompt
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.history import FileHistory

from .drives import Drive
from .environment import DescartesConfig, Environment
from .hub.vg import ManualVerificationGame
from .logger import InMemoryLogger
from .manager import DescartesManager
from .merkle import NIL, SparseMerkleTree
from .proofs import build_claim
from .utils import ManualClock, format_hash, parse_bytes32


DEFAULT_FINAL_TIME = 1_000_000
DEFAULT_ROUND_DURATION = 7200
DEFAULT_OUTPUT_POSITION = 0x9000000000000000


class ActionArgumentCompleter(Completer):
    ACTION_ARGUMENTS = {
        "abort": ["item="],
        "advance": [],
        "challenge": ["item=", "caller="],
        "claim_direct": ["item=", "value=", "caller="],
        "claim_logger": ["item=", "root=", "caller="],
        "confirm": ["item=", "caller="],
        "events": [],
        "instantiate": ["claimer=", "challenger=", "final_time=", "round=", "output_position=", "drives='["],
        "list": [],
        "pause": [],
        "result": ["item="],
        "state": ["item="],
        "store": ["data="],
        "submit": ["item=", "output=", "caller="],
        "verdict": ["item=", "winner="],
        "win": ["item="],
    }

    def get_completions(self, document, complete_event):
        word_before_cursor = document.get_word_before_cursor(WORD=True)

        if ' ' not in document.text:
            # user is typing the action
            for action in self.ACTION_ARGUMENTS.keys():
                if action.startswith(word_before_cursor):
                    yield Completion(action, start_position=-len(word_before_cursor))
        else:
            # user is typing an argument, find which are valid
            action = document.text.split()[0]
            for argument in self.ACTION_ARGUMENTS.get(action, []):
                if argument not in document.text and argument.startswith(word_before_cursor):
                    yield Completion(argument, start_position=-len(word_before_cursor))


actions = list(ActionArgumentCompleter.ACTION_ARGUMENTS.keys())


def parse_int(s: str) -> int:
    return int(s, 0)


def parse_drives(drives_json: str) -> List[Drive]:
    """Parses a json list of drives; positions can be given as hex strings, values and roots as hex strings."""

    drives = []
    for d in json.loads(drives_json):
        position = d["position"]
        drives.append(Drive(
            position=parse_int(position) if isinstance(position, str) else position,
            log2_size=int(d["log2_size"]),
            direct_value=parse_bytes32(d["value"]) if "value" in d else NIL,
            logger_root_hash=parse_bytes32(d["root"]) if "root" in d else NIL,
            provider=d.get("provider"),
            needs_provider=bool(d.get("needs_provider", False)),
            needs_logger=bool(d.get("needs_logger", False)),
        ))
    return drives


def make_environment(config: DescartesConfig, interactive: bool = False) -> Environment:
    li = InMemoryLogger()
    vg = ManualVerificationGame()
    manager = DescartesManager(li, vg, config=config, clock=ManualClock())
    return Environment(manager, li, vg, interactive)


def parse_args(input_line_list: List[str]) -> Dict[str, str]:
    args_dict = {}
    pos_count = 0  # count of positional arguments
    for item in input_line_list:
        parts = item.strip().split('=', 1)
        if len(parts) == 2:
            param, value = parts
            args_dict[param] = value
        else:
            # record positional arguments with keys @0, @1, ...
            args_dict['@' + str(pos_count)] = parts[0]
            pos_count += 1
    return args_dict


def execute_command(env: Environment, input_line: str):
    # consider lines starting with '#' (possibly prefixed with whitespaces) as comments
    if input_line.strip().startswith("#"):
        return

    # Split into a command and the list of arguments
    try:
        input_line_list = shlex.split(input_line)
    except ValueError as e:
        print(f"Invalid command: {str(e)}")
        return

    # Ensure input_line_list is not empty
    if input_line_list:
        action = input_line_list[0].strip()
    else:
        return

    args_dict = parse_args(input_line_list[1:])

    manager = env.manager

    def get_item() -> int:
        item_index = parse_int(args_dict["item"])
        if item_index not in range(len(manager.instances)):
            raise ValueError("Invalid item")
        return item_index

    if action == "":
        return
    elif action not in actions:
        print("Invalid action")
        return
    elif action == "list":
        for instance in manager.instances:
            print(instance.index, instance)
    elif action == "events":
        for event in manager.events:
            print(event)
    elif action == "pause":
        env.prompt(args_dict.get("@0"))
    elif action == "advance":
        seconds = parse_int(args_dict.get("@0", "1"))
        print(f"Time is now {manager.clock.advance(seconds)}")
    elif action == "store":
        data = bytes.fromhex(args_dict["data"].removeprefix("0x"))
        root = env.li.store(data)
        _, log2_size = env.li.calculate_root(data)
        print(f"root={format_hash(root)} log2_size={log2_size}")
    elif action == "instantiate":
        drives = parse_drives(args_dict.get("drives", "[]"))
        index = manager.instantiate(
            final_time=parse_int(args_dict.get("final_time", str(DEFAULT_FINAL_TIME))),
            template_hash=SparseMerkleTree().root,
            output_position=parse_int(args_dict.get("output_position", str(DEFAULT_OUTPUT_POSITION))),
            round_duration=parse_int(args_dict.get("round", str(DEFAULT_ROUND_DURATION))),
            claimer=args_dict["claimer"],
            challenger=args_dict["challenger"],
            drives=drives
        )
        print(f"Created instance {index} in state {manager.get_current_state(index)}")
    elif action == "claim_direct":
        index = get_item()
        manager.claim_direct_drive(index, parse_bytes32(args_dict["value"]), args_dict["caller"])
        print(manager.get_current_state(index))
    elif action == "claim_logger":
        index = get_item()
        manager.claim_logger_drive(index, parse_bytes32(args_dict["root"]), args_dict["caller"])
        print(manager.get_current_state(index))
    elif action == "submit":
        index = get_item()
        state = manager.get_state(index)
        claim = build_claim(
            SparseMerkleTree(),
            state.input_drives,
            state.drive_hash,
            state.output_position,
            parse_bytes32(args_dict["output"])
        )
        manager.submit_claim(
            index,
            claim.final_hash,
            claim.drives,
            claim.drives_siblings,
            claim.output,
            claim.output_siblings,
            args_dict.get("caller", state.claimer)
        )
        print(f"Claimed final hash: {format_hash(claim.final_hash)}")
    elif action == "confirm":
        index = get_item()
        manager.confirm(index, args_dict.get("caller", manager.instances[index].challenger))
        print(manager.get_current_state(index))
    elif action == "challenge":
        index = get_item()
        manager.challenge(index, args_dict.get("caller", manager.instances[index].challenger))
        [(_, handle)] = manager.get_sub_instances(index)
        print(f"Verification game {handle} started")
    elif action == "verdict":
        index = get_item()
        winner = args_dict["winner"]
        if winner not in ["challenger", "claimer"]:
            raise ValueError("winner must be either challenger or claimer")
        sub_instances = manager.get_sub_instances(index)
        if len(sub_instances) == 0:
            raise ValueError("The instance is not being challenged")
        [(_, handle)] = sub_instances
        env.vg.finish(handle, challenger_won=winner == "challenger")
        print("Done")
    elif action == "win":
        index = get_item()
        manager.win_by_vg(index)
        print(manager.get_current_state(index))
    elif action == "abort":
        index = get_item()
        manager.abort_by_deadline(index)
        print(manager.get_current_state(index))
    elif action == "state":
        index = get_item()
        print(manager.get_state(index))
        print(f"Deadline: {manager.get_deadline(index)} (now: {manager.clock()})")
    elif action == "result":
        index = get_item()
        print(manager.get_result(index))


def cli_main(env: Environment):
    completer = ActionArgumentCompleter()
    # Create a history object
    history = FileHistory('.descartes-history')

    while True:
        try:
            input_line = prompt("> ", history=history, completer=completer)
            execute_command(env, input_line)
        except (KeyboardInterrupt, EOFError):
            raise  # exit
        except Exception as err:
            print(f"Error: {err}")
            print(traceback.format_exc())


def script_main(env: Environment, script_filename: str):
    with open(script_filename, "r") as script_file:
        for input_line in script_file:
            try:
                execute_command(env, input_line)
            except Exception as e:
                print(f"Error executing command: {input_line.strip()} - Error: {str(e)}")
                break


def main():
    parser = argparse.ArgumentParser()

    # Script file option
    parser.add_argument("--script", "-s", type=str, help="Execute commands from script file")

    # Configuration file option
    parser.add_argument("--env-file", "-e", type=str, help="Load the configuration from this .env file")

    args = parser.parse_args()

    logging.basicConfig(filename='descartes-shell.log', level=logging.DEBUG)

    env = make_environment(DescartesConfig.from_env(args.env_file), interactive=args.script is None)

    if args.script:
        script_main(env, args.script)
    else:
        try:
            cli_main(env)
        except (KeyboardInterrupt, EOFError):
            pass  # exit


if __name__ == "__main__":
    main()
