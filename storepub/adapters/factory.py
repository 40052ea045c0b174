"""Adapter selection keyed on (platform, delivery mechanism)."""

from __future__ import annotations

import threading
from pathlib import Path

from storepub.core.config import Settings
from storepub.jobs.model import DeliveryMechanism, Job, Platform
from storepub.output.log import PublishLogger
from storepub.secrets.vault import SecretsProvider

from .android_direct import AndroidDirectAdapter
from .android_eas import AndroidEasAdapter
from .android_fastlane import AndroidFastlaneAdapter
from .base import ApiTransport, PollPolicy, StoreAdapter
from .cli_tools import CommandRunner
from .ios_direct import IosDirectAdapter
from .ios_eas import IosEasAdapter
from .ios_fastlane import IosFastlaneAdapter

type _Key = tuple[Platform, DeliveryMechanism, bool]


class AdapterFactory:
    """Builds and caches adapters; ``register`` overrides a slot (tests)."""

    def __init__(
        self,
        *,
        secrets: SecretsProvider,
        settings: Settings,
        logger: PublishLogger,
        transport: ApiTransport | None = None,
        workdir: Path | None = None,
    ) -> None:
        self._secrets = secrets
        self._settings = settings
        self._logger = logger
        self._transport = transport
        self._workdir = workdir
        self._cache: dict[_Key, StoreAdapter] = {}
        self._overrides: dict[tuple[Platform, DeliveryMechanism], StoreAdapter] = {}
        self._lock = threading.Lock()

    def register(
        self, platform: Platform, mechanism: DeliveryMechanism, adapter: StoreAdapter
    ) -> None:
        with self._lock:
            self._overrides[(platform, mechanism)] = adapter

    def default_mechanism(self, platform: Platform) -> DeliveryMechanism:
        delivery = self._settings.delivery
        name = delivery.ios if platform == Platform.IOS else delivery.android
        return DeliveryMechanism(name)

    def for_job(self, job: Job) -> StoreAdapter:
        """Adapter for a job's platform, using its mechanism or the default."""
        mechanism = job.mechanism or self.default_mechanism(job.platform)
        return self.get(job.platform, mechanism, dry_run=job.dry_run)

    def direct(self, platform: Platform, *, dry_run: bool) -> StoreAdapter:
        return self.get(platform, DeliveryMechanism.DIRECT, dry_run=dry_run)

    def get(
        self, platform: Platform, mechanism: DeliveryMechanism, *, dry_run: bool
    ) -> StoreAdapter:
        """Raises ValueError for ``Platform.BOTH``."""
        if platform == Platform.BOTH:
            raise ValueError("an adapter targets a single platform")
        with self._lock:
            override = self._overrides.get((platform, mechanism))
            if override is not None:
                return override
            key: _Key = (platform, mechanism, dry_run)
            adapter = self._cache.get(key)
            if adapter is None:
                adapter = self._build(platform, mechanism, dry_run)
                self._cache[key] = adapter
            return adapter

    def _runner(self, tool: str) -> CommandRunner:
        return CommandRunner(tool, logger=self._logger, secrets=self._secrets.known_secrets())

    def _build(
        self, platform: Platform, mechanism: DeliveryMechanism, dry_run: bool
    ) -> StoreAdapter:
        polling = self._settings.polling
        delay = polling.simulated_delay_seconds
        poll = PollPolicy.from_config(polling)

        if platform == Platform.IOS:
            ios = IosDirectAdapter(
                credentials=self._secrets.asc_credentials(),
                transport=self._transport,
                logger=self._logger,
                dry_run=dry_run,
                poll=poll,
                simulated_delay=delay,
            )
            match mechanism:
                case DeliveryMechanism.DIRECT:
                    return ios
                case DeliveryMechanism.FASTLANE:
                    return IosFastlaneAdapter(
                        direct=ios,
                        fastlane_env=self._secrets.fastlane_env(),
                        runner=self._runner("fastlane"),
                        logger=self._logger,
                        dry_run=dry_run,
                        simulated_delay=delay,
                    )
                case DeliveryMechanism.EAS:
                    return IosEasAdapter(
                        direct=ios,
                        token=self._secrets.eas_token(),
                        runner=self._runner("eas"),
                        logger=self._logger,
                        dry_run=dry_run,
                        workdir=self._workdir,
                        simulated_delay=delay,
                    )

        play_credentials = self._secrets.google_play_credentials()
        android = AndroidDirectAdapter(
            credentials=play_credentials,
            transport=self._transport,
            logger=self._logger,
            dry_run=dry_run,
            poll=poll,
            simulated_delay=delay,
        )
        match mechanism:
            case DeliveryMechanism.DIRECT:
                return android
            case DeliveryMechanism.FASTLANE:
                return AndroidFastlaneAdapter(
                    direct=android,
                    credentials=play_credentials,
                    runner=self._runner("fastlane"),
                    logger=self._logger,
                    dry_run=dry_run,
                    workdir=self._workdir,
                    simulated_delay=delay,
                )
            case DeliveryMechanism.EAS:
                return AndroidEasAdapter(
                    direct=android,
                    token=self._secrets.eas_token(),
                    runner=self._runner("eas"),
                    logger=self._logger,
                    dry_run=dry_run,
                    workdir=self._workdir,
                    simulated_delay=delay,
                )
