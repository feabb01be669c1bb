"""Stage every input of one run so the remote engine can fetch it."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from xrefgen.xref.activity import PLACEHOLDER_SLOT, symbol_slot_names
from xrefgen.xref.models import PLACEHOLDER_LOCAL_NAME, BucketObject, SymbolResource, WorkItemArgument
from xrefgen.xref.storage import ObjectStorage

logger = logging.getLogger(__name__)

SCRATCH_PREFIX = "xref-scratch"


def scratch_script_object(bucket: str, run_id: str) -> BucketObject:
  """Return the per-run script location so concurrent runs never overwrite each other."""
  return BucketObject(bucket=bucket, key=f"{SCRATCH_PREFIX}/{run_id}/script.scr")


@dataclass(frozen=True)
class StagedInputs:
  """Everything the work item needs, with the objects created for this run."""

  floor_plan_url: str
  script_url: str
  script_object: BucketObject
  output: WorkItemArgument
  output_object: BucketObject
  symbol_arguments: dict[str, WorkItemArgument]
  placeholder: WorkItemArgument

  def arguments(self) -> dict[str, WorkItemArgument]:
    """Return the full argument map keyed by activity slot name."""
    args: dict[str, WorkItemArgument] = {
      "inputDwg": WorkItemArgument(url=self.floor_plan_url),
      "script": WorkItemArgument(url=self.script_url),
      "output": self.output,
    }
    args.update(self.symbol_arguments)
    args[PLACEHOLDER_SLOT] = self.placeholder
    return args


class StagingLayer:
  """Collects signed URLs, uploads the script and prepares the output target."""

  def __init__(self, storage: ObjectStorage, *, placeholder_url: str) -> None:
    self._storage = storage
    self._placeholder_url = placeholder_url

  async def _upload_script(self, obj: BucketObject, script_text: str) -> str:
    await self._storage.upload(obj, script_text.encode("utf-8"), "text/plain")
    return await self._storage.signed_read_url(obj)

  async def stage(self, *, run_id: str, bucket: str, floor_plan: BucketObject, script_text: str, symbols: Sequence[SymbolResource], output_filename: str) -> StagedInputs:
    script_object = scratch_script_object(bucket, run_id)
    output_object = BucketObject(bucket=bucket, key=output_filename)

    # Base drawing and script do not depend on each other; a failure in one cancels and awaits the other.
    try:
      async with asyncio.TaskGroup() as group:
        floor_plan_task = group.create_task(self._storage.signed_read_url(floor_plan))
        script_task = group.create_task(self._upload_script(script_object, script_text))
    except ExceptionGroup as exc:
      raise exc.exceptions[0] from None
    floor_plan_url = floor_plan_task.result()
    script_url = script_task.result()
    output = await self._storage.output_argument(output_object, output_filename)

    # Missing symbols get no argument; the script attaches the placeholder instead.
    symbol_arguments = {
      slot: WorkItemArgument(url=symbol.public_url, local_name=symbol.local_name)
      for slot, symbol in zip(symbol_slot_names(symbols), symbols)
      if symbol.has_drawing and symbol.public_url
    }
    logger.info("Staged run %s: %s of %s symbols available", run_id, len(symbol_arguments), len(symbols))

    return StagedInputs(
      floor_plan_url=floor_plan_url,
      script_url=script_url,
      script_object=script_object,
      output=output,
      output_object=output_object,
      symbol_arguments=symbol_arguments,
      placeholder=WorkItemArgument(url=self._placeholder_url, local_name=PLACEHOLDER_LOCAL_NAME),
    )
