from __future__ import annotations

import logging
from typing import Protocol

from .types import ProviderResult

logger = logging.getLogger(__name__)

GEMINI_MODEL = "gemini-2.0-flash"
GROQ_MODEL = "llama-3.3-70b-versatile"
GROQ_BASE_URL = "https://api.groq.com/openai/v1"


class GenerationProvider(Protocol):
    name: str
    model: str

    def complete(self, system_prompt: str, user_message: str, temperature: float, max_tokens: int) -> ProviderResult: ...


class GeminiProvider:
    name = "gemini"

    def __init__(self, api_key: str, model: str = GEMINI_MODEL, timeout_sec: float = 30.0) -> None:
        from google import genai
        from google.genai import types

        self._types = types
        self.client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(timeout_sec * 1000)),
        )
        self.model = model

    def complete(self, system_prompt: str, user_message: str, temperature: float, max_tokens: int) -> ProviderResult:
        try:
            resp = self.client.models.generate_content(
                model=self.model,
                contents=user_message,
                config=self._types.GenerateContentConfig(
                    system_instruction=system_prompt,
                    temperature=temperature,
                    max_output_tokens=max_tokens,
                ),
            )
        except Exception as exc:
            logger.warning("Gemini generation failed: %s", exc)
            return ProviderResult.failure(self.name, str(exc))

        text = (resp.text or "").strip()
        if not text:
            return ProviderResult.failure(self.name, "empty completion")
        usage = getattr(resp, "usage_metadata", None)
        tokens = getattr(usage, "total_token_count", None) if usage else None
        return ProviderResult.success(self.name, text, model=self.model, tokens_used=tokens)


class GroqProvider:
    """Groq chat completions through its OpenAI-compatible endpoint."""

    name = "groq"

    def __init__(
        self,
        api_key: str,
        model: str = GROQ_MODEL,
        timeout_sec: float = 30.0,
        base_url: str = GROQ_BASE_URL,
    ) -> None:
        from openai import OpenAI

        self.client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout_sec, max_retries=0)
        self.model = model

    def complete(self, system_prompt: str, user_message: str, temperature: float, max_tokens: int) -> ProviderResult:
        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_message},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as exc:
            logger.warning("Groq generation failed: %s", exc)
            return ProviderResult.failure(self.name, str(exc))

        content = completion.choices[0].message.content if completion.choices else None
        text = (content or "").strip()
        if not text:
            return ProviderResult.failure(self.name, "empty completion")
        tokens = completion.usage.total_tokens if completion.usage else None
        return ProviderResult.success(self.name, text, model=self.model, tokens_used=tokens)


class LocalTransformersProvider:
    """Causal LM served in-process through transformers.

    Weights load on the first ``complete`` call. Prompts longer than
    ``max_input_tokens`` keep their most recent tokens; the system prompt is
    part of the chat template, so very long histories lose the oldest turns
    first. ``temperature == 0`` means greedy decoding.
    """

    name = "local"

    def __init__(
        self,
        model: str,
        quantization: str = "int4",
        top_p: float = 0.9,
        max_input_tokens: int = 4096,
        max_new_tokens_cap: int = 1024,
    ) -> None:
        self.model = model
        self.quantization = quantization
        self.top_p = top_p
        self.max_input_tokens = max_input_tokens
        self.max_new_tokens_cap = max_new_tokens_cap
        self._model = None
        self._tokenizer = None

    def _quantization_config(self):
        import torch
        from transformers import BitsAndBytesConfig  # type: ignore

        quant = (self.quantization or "").lower()
        if quant in {"int4", "4bit"}:
            return BitsAndBytesConfig(load_in_4bit=True, bnb_4bit_compute_dtype=torch.float16, bnb_4bit_quant_type="nf4")
        if quant in {"int8", "8bit"}:
            return BitsAndBytesConfig(load_in_8bit=True)
        return None

    def _load(self) -> None:
        from transformers import AutoModelForCausalLM, AutoTokenizer  # type: ignore

        self._tokenizer = AutoTokenizer.from_pretrained(self.model)
        self._model = AutoModelForCausalLM.from_pretrained(
            self.model,
            device_map="auto",
            torch_dtype="auto",
            quantization_config=self._quantization_config(),
        )
        self._model.eval()
        logger.info("Loaded local model %s (%s)", self.model, self.quantization or "full precision")

    def complete(self, system_prompt: str, user_message: str, temperature: float, max_tokens: int) -> ProviderResult:
        try:
            if self._model is None or self._tokenizer is None:
                self._load()
            text, tokens = self._generate(system_prompt, user_message, temperature, max_tokens)
        except Exception as exc:
            logger.warning("Local generation failed: %s", exc)
            return ProviderResult.failure(self.name, str(exc))
        if not text:
            return ProviderResult.failure(self.name, "empty completion")
        return ProviderResult.success(self.name, text, model=self.model, tokens_used=tokens)

    def _encode(self, system_prompt: str, user_message: str):
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message},
        ]
        if getattr(self._tokenizer, "chat_template", None):
            input_ids = self._tokenizer.apply_chat_template(messages, add_generation_prompt=True, return_tensors="pt")
        else:
            input_ids = self._tokenizer(f"{system_prompt}\n\n{user_message}\n", return_tensors="pt").input_ids
        if input_ids.shape[-1] > self.max_input_tokens:
            input_ids = input_ids[:, -self.max_input_tokens:]
        return input_ids

    def _generate(self, system_prompt: str, user_message: str, temperature: float, max_tokens: int):
        input_ids = self._encode(system_prompt, user_message).to(self._model.device)
        sampling = {"do_sample": True, "temperature": temperature, "top_p": self.top_p} if temperature > 0 else {"do_sample": False}
        outputs = self._model.generate(
            input_ids,
            max_new_tokens=max(1, min(max_tokens, self.max_new_tokens_cap)),
            pad_token_id=self._tokenizer.eos_token_id,
            **sampling,
        )
        generated = outputs[0][input_ids.shape[-1]:]
        text = self._tokenizer.decode(generated, skip_special_tokens=True).strip()
        return text, int(input_ids.shape[-1] + len(generated))
