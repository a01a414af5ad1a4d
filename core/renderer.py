"""
JavaScript 渲染器（Selenium）

用于懒加载/JS 渲染的页面：打开页面、等待、逐屏滚动直到页面高度不再变化，
返回渲染后的 HTML。初始化失败时 available=False，爬虫退回静态 HTML。
"""
import asyncio
import time
from typing import Optional
from loguru import logger

from config import RenderConfig

SCROLL_INTERVAL = 0.5


class JavaScriptRenderer:
    """
    浏览器渲染器

    Example:
        renderer = JavaScriptRenderer(config.render)
        await renderer.initialize()
        if renderer.available:
            html = await renderer.render(url)
    """

    def __init__(self, render_config: RenderConfig):
        self.config = render_config
        self.driver = None
        self._lock = asyncio.Lock()

    @property
    def available(self) -> bool:
        """渲染器是否可用"""
        return self.driver is not None

    async def initialize(self):
        """启动无头浏览器（失败不抛出）"""
        if self.driver is not None:
            return
        try:
            self.driver = await asyncio.to_thread(self._create_driver)
            logger.info("✓ JavaScript renderer initialized")
        except Exception as e:
            self.driver = None
            logger.error(f"❌ Failed to start browser: {e}")
            logger.info("→ Falling back to static HTML parsing")

    def _create_driver(self):
        try:
            from selenium import webdriver
        except ImportError:
            raise RuntimeError("selenium is not installed: pip install selenium")

        options = webdriver.ChromeOptions()
        options.add_argument('--headless')
        options.add_argument('--no-sandbox')
        options.add_argument('--disable-dev-shm-usage')
        options.add_argument('--disable-gpu')
        options.add_argument('--disable-blink-features=AutomationControlled')

        driver = webdriver.Chrome(options=options)
        driver.set_page_load_timeout(self.config.page_load_timeout)
        return driver

    async def render(self, url: str) -> Optional[str]:
        """
        渲染页面

        Args:
            url: 页面URL

        Returns:
            渲染后的 HTML，失败返回 None
        """
        if not self.available:
            return None

        async with self._lock:
            try:
                return await asyncio.to_thread(self._render_sync, url)
            except Exception as e:
                logger.warning(f"JS rendering failed for {url}: {e}")
                return None

    def _render_sync(self, url: str) -> str:
        self.driver.get(url)
        time.sleep(self.config.wait_ms / 1000)
        self._scroll_to_bottom()
        return self.driver.page_source

    def _scroll_to_bottom(self):
        """逐屏滚动触发懒加载，直到高度稳定"""
        try:
            last_height = self.driver.execute_script("return document.body.scrollHeight")
            for _ in range(self.config.max_scrolls):
                self.driver.execute_script("window.scrollBy(0, window.innerHeight);")
                time.sleep(SCROLL_INTERVAL)
                new_height = self.driver.execute_script("return document.body.scrollHeight")
                if new_height == last_height:
                    break
                last_height = new_height
            self.driver.execute_script("window.scrollTo(0, 0);")
        except Exception as e:
            # 滚动失败不影响已加载的内容
            logger.debug(f"Scrolling failed: {e}")

    async def close(self):
        """关闭浏览器"""
        if self.driver is None:
            return
        driver, self.driver = self.driver, None
        try:
            await asyncio.to_thread(driver.quit)
        except Exception as e:
            logger.debug(f"Browser quit error: {e}")
